from __future__ import annotations

import pytest

from bundleuri.core.exception import InsufficientCapabilitiesError, TransportError
from bundleuri.core.registry.transports import list_transports
from bundleuri.core.transports import materialize, uri_scheme


def test_builtin_transports_are_registered():
    names = list_transports()
    for scheme in ("file", "local", "http", "https"):
        assert scheme in names


def test_uri_scheme():
    assert uri_scheme("https://example.com/b.bundle") == "https"
    assert uri_scheme("HTTP://example.com") == "http"
    assert uri_scheme("file:///tmp/x") == "file"
    assert uri_scheme("/tmp/x.bundle") is None
    assert uri_scheme("relative/path") is None


def test_file_uri_and_plain_path_copy_the_same_bytes(temp_dir, settings):
    src = temp_dir / "src.bin"
    src.write_bytes(b"\x00bundle bytes\xff")

    materialize(f"file://{src}", temp_dir / "a", settings=settings)
    materialize(str(src), temp_dir / "b", settings=settings)

    assert (temp_dir / "a").read_bytes() == src.read_bytes()
    assert (temp_dir / "b").read_bytes() == src.read_bytes()


def test_missing_local_file_is_transport_error(temp_dir, settings):
    with pytest.raises(TransportError):
        materialize(str(temp_dir / "missing.bundle"), temp_dir / "out", settings=settings)
    assert not (temp_dir / "out").exists()


def test_remote_helper_with_get_downloads(temp_dir, settings, make_helper):
    payload = temp_dir / "served.bin"
    payload.write_bytes(b"remote content")
    script, log_file = make_helper(serve_file=payload)
    s = settings.model_copy(update={"remote_helper": str(script)})

    uri = "https://example.com/b.bundle"
    dest = temp_dir / "dest"
    materialize(uri, dest, settings=s)

    assert dest.read_bytes() == b"remote content"
    lines = log_file.read_text("utf-8").splitlines()
    assert lines[0] == f"argv origin {uri}"
    assert lines[1] == "capabilities"
    assert lines[2] == f"get {uri} {dest}"
    assert lines[3] == ""


def test_remote_helper_without_get_is_insufficient(temp_dir, settings, make_helper):
    script, log_file = make_helper(caps=("fetch", "option"))
    s = settings.model_copy(update={"remote_helper": str(script)})

    with pytest.raises(InsufficientCapabilitiesError):
        materialize("https://example.com/b.bundle", temp_dir / "dest", settings=s)

    lines = log_file.read_text("utf-8").splitlines()
    assert "capabilities" in lines
    assert not any(line.startswith("get ") for line in lines)
    assert not (temp_dir / "dest").exists()


def test_remote_helper_nonzero_exit_is_transport_error(temp_dir, settings, make_helper):
    payload = temp_dir / "served.bin"
    payload.write_bytes(b"x")
    script, _ = make_helper(serve_file=payload, exit_code=3)
    s = settings.model_copy(update={"remote_helper": str(script)})

    with pytest.raises(TransportError) as ei:
        materialize("http://example.com/b.bundle", temp_dir / "dest", settings=s)
    assert not isinstance(ei.value, InsufficientCapabilitiesError)
    assert "status 3" in str(ei.value)


def test_missing_remote_helper_binary_is_transport_error(temp_dir, settings):
    s = settings.model_copy(update={"remote_helper": str(temp_dir / "no-such-helper")})
    with pytest.raises(TransportError):
        materialize("https://example.com/b.bundle", temp_dir / "dest", settings=s)


def test_remote_helper_crlf_capabilities(temp_dir, settings, make_helper):
    payload = temp_dir / "served.bin"
    payload.write_bytes(b"crlf content")
    script, log_file = make_helper(caps=("get",), serve_file=payload, eol="\r\n")
    s = settings.model_copy(update={"remote_helper": str(script)})

    dest = temp_dir / "dest"
    materialize("https://example.com/b.bundle", dest, settings=s)

    assert dest.read_bytes() == b"crlf content"
    assert f"get https://example.com/b.bundle {dest}" in log_file.read_text("utf-8").splitlines()


def test_missing_get_wins_over_helper_exit_status(temp_dir, settings, make_helper):
    script, log_file = make_helper(caps=("fetch",), exit_code=128)
    s = settings.model_copy(update={"remote_helper": str(script)})

    with pytest.raises(InsufficientCapabilitiesError):
        materialize("https://example.com/b.bundle", temp_dir / "dest", settings=s)
    assert not any(line.startswith("get ") for line in log_file.read_text("utf-8").splitlines())


def test_line_breaks_in_uri_never_reach_the_helper(temp_dir, settings, make_helper):
    script, log_file = make_helper()
    s = settings.model_copy(update={"remote_helper": str(script)})

    with pytest.raises(TransportError, match="line breaks"):
        materialize("https://example.com/a\nget https://evil.example/x /tmp/x", temp_dir / "dest", settings=s)
    assert not log_file.exists()
