"""bundleuri-remote-https: a remote helper that can `get` http(s) URIs.

Usage (spawned by the fetch pipeline, never by hand):

    bundleuri-remote-https <remote> <url>

Commands are read from stdin one per line:

    capabilities        -> answers "get" and a blank line
    get <uri> <path>    -> downloads <uri> into <path>, answers a blank line
    <blank line>/EOF    -> ends the session

A failed download ends the session with exit status 1.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import List, TextIO

import httpx

from bundleuri.core.runtime.settings import load_settings

log = logging.getLogger("bundleuri.core.helpers.remote_https")

CAPABILITIES = ["get"]


def download(client: httpx.Client, uri: str, path: str | Path) -> None:
    """Stream `uri` into `path`, replacing it only once the body is complete."""
    dest = Path(path)
    tmp = dest.with_name(dest.name + ".part")
    try:
        with client.stream("GET", uri) as r:
            r.raise_for_status()
            with open(tmp, "wb") as f:
                for chunk in r.iter_bytes():
                    f.write(chunk)
        os.replace(tmp, dest)
    finally:
        tmp.unlink(missing_ok=True)


def serve(stdin: TextIO, stdout: TextIO, *, client: httpx.Client) -> int:
    """Run the helper's command loop. Returns the process exit status."""
    while True:
        line = stdin.readline()
        if not line:
            return 0
        line = line.rstrip("\n")
        if not line:
            return 0

        if line == "capabilities":
            for cap in CAPABILITIES:
                stdout.write(f"{cap}\n")
            stdout.write("\n")
            stdout.flush()
            continue

        if line.startswith("get "):
            uri, _, path = line[len("get "):].partition(" ")
            if not uri or not path:
                log.error("malformed get command: %r", line)
                return 1
            try:
                download(client, uri, path)
            except (httpx.HTTPError, OSError) as e:
                log.error("failed to download %s: %s", uri, e)
                return 1
            stdout.write("\n")
            stdout.flush()
            continue

        log.error("unknown command %r", line)
        return 1


def main(argv: List[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) < 1:
        sys.stderr.write("usage: bundleuri-remote-https <remote> [<url>]\n")
        return 2

    settings = load_settings()
    logging.basicConfig(level=settings.log_level, stream=sys.stderr, format="%(name)s: %(message)s")
    with httpx.Client(timeout=settings.http_timeout, follow_redirects=True) as client:
        return serve(sys.stdin, sys.stdout, client=client)


if __name__ == "__main__":
    raise SystemExit(main())
