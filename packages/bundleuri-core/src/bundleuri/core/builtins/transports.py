from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import BinaryIO, Set

from bundleuri.core.exception import InsufficientCapabilitiesError, TransportError
from bundleuri.core.registry.transports import register_transport
from bundleuri.core.runtime.settings import Settings
from bundleuri.core.transports import LOCAL

log = logging.getLogger("bundleuri.core.builtin.transports")

FILE_PREFIX = "file://"


class _Base:
    """Small concrete base for built-in transports (keeps init consistent)."""

    def __init__(self, settings: Settings):
        self.settings = settings


@register_transport("file", LOCAL)
class FileTransport(_Base):
    """Byte-for-byte copy of a local file. `file://<path>` and `<path>` are equivalent."""

    def materialize(self, uri: str, dest: Path) -> None:
        src = uri[len(FILE_PREFIX):] if uri.startswith(FILE_PREFIX) else uri
        try:
            shutil.copyfile(src, dest)
        except OSError as e:
            raise TransportError(f"failed to copy '{src}' to '{dest}': {e}") from e


def _read_capabilities(stream: BinaryIO) -> Set[str]:
    """Read advertised capability lines until a blank line or end of stream."""
    caps: Set[str] = set()
    while True:
        raw = stream.readline()
        if not raw:
            break
        line = raw.rstrip(b"\n")
        # Helpers may answer with CRLF line endings.
        if line.endswith(b"\r"):
            line = line[:-1]
        line = line.decode("utf-8", errors="replace")
        if not line:
            break
        caps.add(line)
    return caps


@register_transport("http", "https")
class RemoteHelperTransport(_Base):
    """
    Download through a remote helper process.

    Protocol (half duplex, one line per message):
      -> capabilities
      <- <capability>* followed by a blank line (or EOF)
      -> get <uri> <dest>
      -> <blank line>
    The helper's exit status decides success.
    """

    def materialize(self, uri: str, dest: Path) -> None:
        argv = [self.settings.remote_helper, self.settings.remote_name, uri]
        if any(c in uri for c in "\r\n") or any(c in str(dest) for c in "\r\n"):
            raise TransportError(f"cannot pass {uri!r} to a remote helper: line breaks in command arguments")
        try:
            p = subprocess.Popen(argv, stdin=subprocess.PIPE, stdout=subprocess.PIPE)
        except OSError as e:
            raise TransportError(f"failed to start remote helper {argv[0]}: {e}") from e

        error: TransportError | None = None
        try:
            p.stdin.write(b"capabilities\n")
            # Flush before the first read, otherwise both sides sit on buffered data.
            p.stdin.flush()

            caps = _read_capabilities(p.stdout)
            log.debug("remote helper %s capabilities: %s", argv[0], sorted(caps))

            if "get" not in caps:
                error = InsufficientCapabilitiesError(
                    f"insufficient capabilities: remote helper {argv[0]} does not support 'get'"
                )
            else:
                p.stdin.write(f"get {uri} {dest}\n\n".encode("utf-8"))
        except OSError as e:
            error = TransportError(f"lost connection to remote helper {argv[0]}: {e}")
        finally:
            try:
                p.stdin.close()
            except OSError as e:
                if error is None:
                    error = TransportError(f"lost connection to remote helper {argv[0]}: {e}")
            rc = p.wait()
            p.stdout.close()

        # A missing `get` is reported as such whatever the helper does on EOF.
        if isinstance(error, InsufficientCapabilitiesError):
            log.debug("remote helper %s exited with status %d", argv[0], rc)
            raise error
        if rc != 0:
            raise TransportError(f"remote helper {argv[0]} exited with status {rc}") from error
        if error is not None:
            raise error
