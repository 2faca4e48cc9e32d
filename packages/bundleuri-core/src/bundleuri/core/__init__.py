"""bundleuri core package.

Public entrypoints:
- bundleuri.core.api: stable API surface for integrations
- bundleuri.core.fetch_bundle_uri: bootstrap a repository from one bundle URI

Internal modules may change without notice.
"""

from __future__ import annotations

# Strict architecture enforcement (default ON; set BUNDLEURI_STRICT_ARCH=0 to disable).
from bundleuri.core._architecture_guard import assert_architecture as _assert_architecture

_assert_architecture()

# Ensure built-in transports are registered on import.
from bundleuri.core.builtins import transports as _transports  # noqa: F401

from bundleuri.core.fetch import fetch_bundle_uri

__all__ = ["fetch_bundle_uri"]
