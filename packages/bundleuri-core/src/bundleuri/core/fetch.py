from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional

from bundleuri.core.bundle import is_bundle
from bundleuri.core.bundle_list import RemoteBundleInfo
from bundleuri.core.exception import BundleURIError, ConfigError, NotABundleError, RefUpdateError
from bundleuri.core.observability import FetchObserver, log_event
from bundleuri.core.runtime.settings import Settings, load_settings
from bundleuri.core.spec import BundleFetchResult, RefUpdate
from bundleuri.core.transports import materialize
from bundleuri.core.unbundle import unbundle_from_file

log = logging.getLogger("bundleuri.core.fetch")

TEMP_PATTERN = "bundles/tmp_uri_XXXXXX"

# Keeps the private bundle refs out of decorated log output.
EXCLUDE_DECORATION_KEY = "log.excludedecoration"
EXCLUDE_DECORATION_VALUE = "refs/bundle/"


def find_temp_filename(repo) -> Path:
    """Reserve a unique name in the object store's staging area and free it again.

    The placeholder is removed so the transport creates the file itself. Another
    process could grab the same name in between; the random suffix makes that
    unlikely, and nothing downstream relies on exclusive creation.
    """
    try:
        fd, path = repo.objects.mkstemp(TEMP_PATTERN)
    except OSError as e:
        raise BundleURIError(f"failed to create temporary file: {e}") from e
    os.close(fd)
    path.unlink()
    return path


def _fetch(repo, uri: str, *, settings: Settings, bundle: Optional[RemoteBundleInfo] = None) -> BundleFetchResult:
    filename = find_temp_filename(repo)
    if bundle is not None:
        bundle.file = str(filename)

    observer = FetchObserver(settings=settings, logger=log, uri=uri)
    observer.fetch_start(temp_file=str(filename))
    status = "FAILED"
    error: Optional[str] = None
    updates: List[RefUpdate] = []
    try:
        materialize(uri, filename, settings=settings)
        log_event(log, settings=settings, level=logging.DEBUG, event="bundle_transport_done", uri=uri, exists=filename.exists())

        if not is_bundle(filename):
            raise NotABundleError(f"file at URI '{uri}' is not a bundle")

        updates = unbundle_from_file(repo, filename, settings=settings)

        try:
            repo.config.ensure_exact_value_present(EXCLUDE_DECORATION_KEY, EXCLUDE_DECORATION_VALUE)
        except (ConfigError, OSError):
            log.warning("failed to set %s; continuing", EXCLUDE_DECORATION_KEY, exc_info=True)

        status = "SUCCESS"
        return BundleFetchResult(uri=uri, updated_refs=updates)
    except (BundleURIError, RefUpdateError) as e:
        error = f"{type(e).__name__}: {e}"
        raise
    finally:
        filename.unlink(missing_ok=True)
        if bundle is not None:
            bundle.file = None
        observer.fetch_end(status=status, refs=[u.name for u in updates], error=error)


def fetch_bundle_uri(repo, uri: str, *, settings: Settings | None = None) -> BundleFetchResult:
    """Download the bundle at `uri`, unpack it and publish its heads under refs/bundles/.

    Raises TransportError (InsufficientCapabilitiesError), NotABundleError or
    IngestError on recoverable failures, and RefUpdateError when a ref write
    loses a compare-and-set. The temporary download is removed on every path.
    """
    settings = settings or load_settings()
    return _fetch(repo, uri, settings=settings)


def fetch_bundle(repo, bundle: RemoteBundleInfo, *, settings: Settings | None = None) -> BundleFetchResult:
    """Fetch one bundle list entry; `bundle.file` names the download while it is in flight."""
    if not bundle.uri:
        raise ValueError(f"bundle '{bundle.id}' has no uri")
    settings = settings or load_settings()
    return _fetch(repo, bundle.uri, settings=settings, bundle=bundle)
