"""Bundle container format.

A bundle is a text header followed by a pack stream:

    # v2 git bundle                  (or "# v3 git bundle")
    @object-format=sha256            (v3 only: capabilities)
    -<oid> <comment>                 (prerequisites)
    <oid> <refname>                  (references)
    <blank line>
    PACK...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Sequence, Tuple

from bundleuri.core.exception import IngestError, NotABundleError
from bundleuri.core.objects import HASH_ALGOS

log = logging.getLogger("bundleuri.core.bundle")

BUNDLE_SIGNATURES = {
    b"# v2 git bundle": 2,
    b"# v3 git bundle": 3,
}
KNOWN_CAPABILITIES = {"object-format", "filter"}

# Header lines are short; anything longer means we are reading binary junk.
_MAX_HEADER_LINE = 64 * 1024


@dataclass
class BundleHeader:
    version: int
    hash_algo: str = "sha1"
    capabilities: Dict[str, str] = field(default_factory=dict)
    prerequisites: List[Tuple[str, str]] = field(default_factory=list)
    # (refname, oid) in declaration order.
    references: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def filter(self) -> Optional[str]:
        return self.capabilities.get("filter")


def _read_line(f: BinaryIO) -> Optional[bytes]:
    raw = f.readline(_MAX_HEADER_LINE)
    if not raw:
        return None
    if not raw.endswith(b"\n"):
        if len(raw) >= _MAX_HEADER_LINE:
            raise NotABundleError("bundle header line too long")
        # Final line without newline: header never terminated.
        return None
    return raw[:-1]


def _parse_oid(text: str, hash_algo: str) -> Optional[str]:
    n = HASH_ALGOS[hash_algo] * 2
    oid = text[:n].lower()
    if len(oid) != n or any(c not in "0123456789abcdef" for c in oid):
        return None
    return oid


def read_bundle_header(f: BinaryIO) -> BundleHeader:
    """Parse the header, leaving `f` positioned at the start of the pack."""
    first = _read_line(f)
    if first is None or first.rstrip(b"\r") not in BUNDLE_SIGNATURES:
        raise NotABundleError("missing bundle signature")
    header = BundleHeader(version=BUNDLE_SIGNATURES[first.rstrip(b"\r")])

    while True:
        raw = _read_line(f)
        if raw is None:
            raise NotABundleError("bundle header is not terminated by a blank line")
        try:
            line = raw.decode("utf-8").rstrip("\r")
        except UnicodeDecodeError as e:
            raise NotABundleError("bundle header is not valid text") from e
        if not line:
            break

        if line.startswith("@"):
            if header.version < 3:
                raise NotABundleError(f"capability in a v{header.version} bundle: {line}")
            key, _, value = line[1:].partition("=")
            if key not in KNOWN_CAPABILITIES:
                raise NotABundleError(f"unknown bundle capability: {key}")
            if key == "object-format":
                if value not in HASH_ALGOS:
                    raise NotABundleError(f"unknown object format: {value}")
                header.hash_algo = value
            header.capabilities[key] = value
            continue

        is_prereq = line.startswith("-")
        body = line[1:] if is_prereq else line
        oid = _parse_oid(body, header.hash_algo)
        rest = body[len(oid):] if oid else ""
        if oid is None or (rest and not rest[0].isspace()) or (not is_prereq and not rest.strip()):
            raise NotABundleError(f"unrecognized bundle header line: {line}")

        if is_prereq:
            header.prerequisites.append((oid, rest.strip()))
        else:
            header.references.append((rest.strip(), oid))

    return header


def read_bundle_header_from_file(path: str | Path) -> BundleHeader:
    with open(path, "rb") as f:
        return read_bundle_header(f)


def is_bundle(path: str | Path) -> bool:
    try:
        read_bundle_header_from_file(path)
    except (OSError, NotABundleError) as e:
        log.debug("not a bundle: %s (%s)", path, e)
        return False
    return True


def unbundle(repo, header: BundleHeader, stream: BinaryIO, extra_index_pack_args: Sequence[str] = ()) -> None:
    """Add the pack that follows `header` in `stream` to the repository's objects."""
    missing = repo.objects.missing_objects(oid for oid, _ in header.prerequisites)
    if missing:
        raise IngestError("repository lacks these prerequisite commits: " + ", ".join(missing))

    args = list(extra_index_pack_args)
    if header.filter:
        args.append("--promisor=from-bundle")

    repo.objects.index_pack(
        stream,
        tips=[oid for _, oid in header.references],
        hash_algo=header.hash_algo,
        extra_args=args,
    )
