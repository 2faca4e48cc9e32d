from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Sequence

from bundleuri.core.bundle import read_bundle_header, unbundle
from bundleuri.core.exception import IngestError, NotABundleError
from bundleuri.core.observability import log_event
from bundleuri.core.runtime.settings import Settings, load_settings
from bundleuri.core.spec import RefUpdate

log = logging.getLogger("bundleuri.core.unbundle")

HEADS_PREFIX = "refs/heads/"
BUNDLES_PREFIX = "refs/bundles/"
REFLOG_MESSAGE = "fetched bundle"


def bundle_ref_name(refname: str) -> str | None:
    """`refs/heads/<name>` -> `refs/bundles/<name>`; None for anything outside refs/heads/."""
    if not refname.startswith(HEADS_PREFIX):
        return None
    return BUNDLES_PREFIX + refname[len(HEADS_PREFIX):]


def unbundle_from_file(
    repo,
    file: str | Path,
    *,
    extra_index_pack_args: Sequence[str] = (),
    settings: Settings | None = None,
) -> List[RefUpdate]:
    """Ingest the bundle at `file` and publish its heads under refs/bundles/.

    Refs are written one at a time in declaration order, each with a
    compare-and-set against the value read just before. A failed ref write
    raises RefUpdateError and stops translation; refs already written stay.
    """
    settings = settings or load_settings()
    try:
        f = open(file, "rb")
    except OSError as e:
        raise NotABundleError(f"cannot open bundle {file}: {e}") from e

    with f:
        header = read_bundle_header(f)
        try:
            unbundle(repo, header, f, extra_index_pack_args)
        except OSError as e:
            raise IngestError(f"failed to unpack bundle {file}: {e}") from e

    updates: List[RefUpdate] = []
    for refname, oid in header.references:
        dest = bundle_ref_name(refname)
        if dest is None:
            continue

        old = repo.refs.read_ref(dest)
        repo.refs.update_ref(dest, oid, old, message=REFLOG_MESSAGE, skip_oid_verification=True)
        updates.append(RefUpdate(name=dest, new_oid=oid, old_oid=old))
        log_event(log, settings=settings, level=logging.INFO, event="bundle_ref_updated", ref=dest, old_oid=old, new_oid=oid)

    return updates
