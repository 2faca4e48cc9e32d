"""Centralized customized exceptions for bundleuri.

All customized exceptions live in this module (enforced at import time by
`bundleuri.core._architecture_guard`).

Internal code should prefer explicit imports:

    from bundleuri.core.exception import TransportError

Recoverable fetch failures derive from `BundleURIError`. `RefUpdateError` is
intentionally outside that hierarchy: a failed conditional ref write during
translation aborts the whole operation and callers catching `BundleURIError`
for fallback purposes must not swallow it.
"""

from __future__ import annotations

__all__ = [
    "SpecError",
    "ConfigError",
    "BundleURIError",
    "TransportError",
    "InsufficientCapabilitiesError",
    "NotABundleError",
    "IngestError",
    "RefUpdateError",
]


class SpecError(ValueError):
    """Raised when a bundle list file is invalid (schema or syntax)."""


class ConfigError(ValueError):
    """Raised when a config store operation is ambiguous or the file is malformed."""


class BundleURIError(RuntimeError):
    """Base error for recoverable bundle fetch failures."""


class TransportError(BundleURIError):
    """Raised when a URI cannot be materialized into a local file."""


class InsufficientCapabilitiesError(TransportError):
    """Raised when a remote helper does not advertise the `get` capability."""


class NotABundleError(BundleURIError):
    """Raised when a downloaded file is not a recognized bundle container."""


class IngestError(BundleURIError):
    """Raised when a bundle's objects cannot be added to the object store."""


class RefUpdateError(Exception):
    """Raised when a conditional ref update fails during bundle translation."""

    def __init__(self, refname: str, message: str):
        super().__init__(f"cannot update ref '{refname}': {message}")
        self.refname = refname
