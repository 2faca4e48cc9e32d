from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

from bundleuri.core.runtime.settings import Settings, load_settings

log = logging.getLogger("bundleuri.core.transports")

# Transport used for anything that is not a registered scheme: the whole string is a path.
LOCAL = "local"

_SCHEME_RE = re.compile(r"^([A-Za-z][A-Za-z0-9+.-]*):")


def uri_scheme(uri: str) -> Optional[str]:
    m = _SCHEME_RE.match(uri)
    return m.group(1).lower() if m else None


def materialize(uri: str, dest: str | Path, *, settings: Settings | None = None) -> None:
    """Copy the resource named by `uri` into the local file `dest`.

    http:/https: go through the remote helper, file:// and plain paths are
    copied. Raises TransportError on failure.
    """
    # Registers the built-in transports on first use.
    from bundleuri.core.builtins import transports as _builtin  # noqa: F401
    from bundleuri.core.registry.transports import REGISTRY

    settings = settings or load_settings()
    scheme = uri_scheme(uri)
    name = scheme if scheme in REGISTRY else LOCAL
    transport = REGISTRY.create(name, settings=settings)
    log.debug("materializing %s via %s transport into %s", uri, name, dest)
    transport.materialize(uri, Path(dest))
