from __future__ import annotations

import hashlib
import logging
import os
import struct
import tempfile
from pathlib import Path
from typing import BinaryIO, Iterable, List, Sequence, Tuple

from bundleuri.core.exception import IngestError

log = logging.getLogger("bundleuri.core.objects")

PACK_SIGNATURE = b"PACK"
PACK_VERSIONS = {2, 3}
_PACK_HEADER = struct.Struct(">4sII")
_CHUNK = 64 * 1024

HASH_ALGOS = {"sha1": 20, "sha256": 32}


def _parse_pattern(pattern: str) -> Tuple[str, str]:
    """Split 'sub/dir/prefix_XXXXXX' into ('sub/dir', 'prefix_')."""
    head, _, name = pattern.rpartition("/")
    prefix = name.rstrip("X")
    if prefix == name:
        raise ValueError(f"temp file pattern must end in X placeholders: {pattern}")
    return head, prefix


class ObjectStore:
    """Pack-based object database rooted at `<repo>/objects`.

    Packs arrive whole from bundles and are stored as
    `pack/pack-<checksum>.pack`. Object contents are not indexed; the ref tips
    that a pack was published with are recorded next to it (`.tips`) so later
    bundles can name them as prerequisites.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    @property
    def pack_dir(self) -> Path:
        return self.root / "pack"

    def init(self) -> None:
        self.pack_dir.mkdir(parents=True, exist_ok=True)

    def mkstemp(self, pattern: str) -> Tuple[int, Path]:
        """Create a uniquely named file in the staging area below the object dir.

        `pattern` is relative to the object dir and ends in X placeholders,
        e.g. `bundles/tmp_uri_XXXXXX`. Returns (fd, path); the caller owns the fd.
        """
        sub, prefix = _parse_pattern(pattern)
        d = self.root / sub if sub else self.root
        d.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(prefix=prefix, dir=str(d))
        return fd, Path(name)

    def _loose_path(self, oid: str) -> Path:
        return self.root / oid[:2] / oid[2:]

    def _known_tips(self) -> set[str]:
        tips: set[str] = set()
        if not self.pack_dir.exists():
            return tips
        for p in self.pack_dir.glob("pack-*.tips"):
            tips.update(line.strip() for line in p.read_text("utf-8").splitlines() if line.strip())
        return tips

    def has_object(self, oid: str) -> bool:
        oid = oid.lower()
        if self._loose_path(oid).exists():
            return True
        return oid in self._known_tips()

    def missing_objects(self, oids: Iterable[str]) -> List[str]:
        tips = self._known_tips()
        return [oid for oid in oids if not (self._loose_path(oid.lower()).exists() or oid.lower() in tips)]

    def list_packs(self) -> List[Path]:
        if not self.pack_dir.exists():
            return []
        return sorted(self.pack_dir.glob("pack-*.pack"))

    def index_pack(
        self,
        stream: BinaryIO,
        *,
        tips: Sequence[str] = (),
        hash_algo: str = "sha1",
        extra_args: Sequence[str] = (),
    ) -> Path:
        """Copy a pack stream into the object store after checking it.

        The pack must start with the `PACK` signature and a supported version,
        and end in a trailer that hashes everything before it. `extra_args`
        follow index-pack conventions; `--promisor[=<message>]` marks the pack
        as coming from a filtered source.
        """
        if hash_algo not in HASH_ALGOS:
            raise IngestError(f"unsupported object format: {hash_algo}")
        trailer_len = HASH_ALGOS[hash_algo]

        self.init()
        fd, tmp_name = tempfile.mkstemp(prefix="tmp_pack_", dir=str(self.pack_dir))
        tmp = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as out:
                size = 0
                while True:
                    chunk = stream.read(_CHUNK)
                    if not chunk:
                        break
                    out.write(chunk)
                    size += len(chunk)

            if size < _PACK_HEADER.size + trailer_len:
                raise IngestError(f"pack is truncated ({size} bytes)")

            h = hashlib.new(hash_algo)
            with open(tmp, "rb") as f:
                sig, version, count = _PACK_HEADER.unpack(f.read(_PACK_HEADER.size))
                if sig != PACK_SIGNATURE:
                    raise IngestError("pack signature mismatch")
                if version not in PACK_VERSIONS:
                    raise IngestError(f"pack version {version} unsupported")
                h.update(_PACK_HEADER.pack(sig, version, count))
                remaining = size - _PACK_HEADER.size - trailer_len
                while remaining > 0:
                    chunk = f.read(min(_CHUNK, remaining))
                    if not chunk:
                        raise IngestError("pack is truncated")
                    h.update(chunk)
                    remaining -= len(chunk)
                trailer = f.read(trailer_len)
            if trailer != h.digest():
                raise IngestError("pack checksum mismatch")

            checksum = trailer.hex()
            final = self.pack_dir / f"pack-{checksum}.pack"
            os.replace(tmp, final)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise

        # Identical packs land on the same name; keep every tip ever published with it.
        tips_file = final.with_suffix(".tips")
        known = tips_file.read_text("utf-8").split() if tips_file.exists() else []
        merged = list(dict.fromkeys(known + [t.lower() for t in tips]))
        tips_file.write_text("".join(f"{t}\n" for t in merged), encoding="utf-8")
        for arg in extra_args:
            if arg == "--promisor" or arg.startswith("--promisor="):
                _, _, message = arg.partition("=")
                final.with_suffix(".promisor").write_text(f"{message}\n" if message else "", encoding="utf-8")
            else:
                log.warning("ignoring unsupported index-pack argument %r", arg)
        log.debug("stored pack %s objects=%d", final.name, count)
        return final
