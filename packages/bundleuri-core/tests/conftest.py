import hashlib
import shutil
import struct
import sys
import tempfile
import textwrap
from pathlib import Path

# Allow running tests without installing the package.
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

import pytest
from bundleuri.core.repository import Repository
from bundleuri.core.runtime.settings import Settings

OID_A = "a" * 40
OID_B = "b" * 40
OID_C = "c" * 40


def empty_pack(hash_algo: str = "sha1") -> bytes:
    header = struct.pack(">4sII", b"PACK", 2, 0)
    return header + hashlib.new(hash_algo, header).digest()


def bundle_bytes(refs, *, prerequisites=(), version=2, capabilities=None, pack=None, hash_algo="sha1") -> bytes:
    lines = [f"# v{version} git bundle"]
    for key, value in (capabilities or {}).items():
        lines.append(f"@{key}={value}")
    for oid, comment in prerequisites:
        lines.append(f"-{oid} {comment}".rstrip())
    for refname, oid in refs:
        lines.append(f"{oid} {refname}")
    header = ("\n".join(lines) + "\n\n").encode("utf-8")
    return header + (empty_pack(hash_algo) if pack is None else pack)


@pytest.fixture()
def temp_dir():
    d = Path(tempfile.mkdtemp(prefix="bundleuri_test_"))
    try:
        yield d
    finally:
        shutil.rmtree(d, ignore_errors=True)


@pytest.fixture()
def settings():
    return Settings(log_level="INFO")


@pytest.fixture()
def repo(temp_dir):
    return Repository.init(temp_dir / "repo")


@pytest.fixture()
def make_bundle(temp_dir):
    """Write a bundle file: make_bundle("x.bundle", [("refs/heads/main", OID_A)], ...)."""

    def _make(name, refs, **kw):
        p = temp_dir / name
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(bundle_bytes(refs, **kw))
        return p

    return _make


@pytest.fixture()
def make_helper(temp_dir):
    """Write an executable fake remote helper.

    The helper answers `capabilities` with `caps` (lines ended by `eol`), records every line it reads
    in <temp_dir>/helper.log, serves `get` by copying `serve_file`, and exits
    with `exit_code`.
    """

    def _make(caps=("fetch", "get"), serve_file=None, exit_code=0, name="git-remote-fake", eol="\n"):
        log_file = temp_dir / "helper.log"
        script = temp_dir / name
        src = repr(str(serve_file)) if serve_file else "None"
        body = textwrap.dedent(
            f"""\
            #!{sys.executable}
            import shutil, sys
            eol = {eol!r}
            log = open({str(log_file)!r}, "a")
            log.write("argv " + " ".join(sys.argv[1:]) + "\\n")
            while True:
                line = sys.stdin.readline()
                if not line:
                    break
                line = line.rstrip("\\n")
                log.write(line + "\\n")
                log.flush()
                if line == "capabilities":
                    for cap in {list(caps)!r}:
                        sys.stdout.write(cap + eol)
                    sys.stdout.write(eol)
                    sys.stdout.flush()
                elif line.startswith("get "):
                    uri, path = line[4:].split(" ", 1)
                    src = {src}
                    if src:
                        shutil.copyfile(src, path)
            sys.exit({int(exit_code)})
            """
        )
        script.write_text(body, encoding="utf-8")
        script.chmod(0o755)
        return script, log_file

    return _make
