from __future__ import annotations

import logging

import pytest
from conftest import OID_A, OID_B, OID_C

from bundleuri.core.bundle_list import RemoteBundleInfo
from bundleuri.core.exception import (
    BundleURIError,
    IngestError,
    InsufficientCapabilitiesError,
    NotABundleError,
    RefUpdateError,
    TransportError,
)
from bundleuri.core.fetch import (
    EXCLUDE_DECORATION_KEY,
    EXCLUDE_DECORATION_VALUE,
    fetch_bundle,
    fetch_bundle_uri,
    find_temp_filename,
)


def _staging_files(repo):
    d = repo.objects.root / "bundles"
    return sorted(d.iterdir()) if d.exists() else []


def test_file_uri_publishes_heads_under_bundles(repo, settings, make_bundle):
    b = make_bundle("b.bundle", [("refs/heads/main", OID_A)])

    res = fetch_bundle_uri(repo, f"file://{b}", settings=settings)

    assert repo.refs.read_ref("refs/bundles/main") == OID_A
    assert [u.name for u in res.updated_refs] == ["refs/bundles/main"]
    assert res.updated_refs[0].old_oid is None
    assert repo.config.get_all(EXCLUDE_DECORATION_KEY) == [EXCLUDE_DECORATION_VALUE]
    assert _staging_files(repo) == []
    assert len(repo.objects.list_packs()) == 1


def test_only_heads_are_translated(repo, settings, make_bundle):
    b = make_bundle(
        "b.bundle",
        [("refs/heads/main", OID_A), ("refs/tags/v1", OID_B), ("refs/heads/topic/x", OID_C), ("HEAD", OID_A)],
    )
    fetch_bundle_uri(repo, str(b), settings=settings)

    assert repo.refs.list_refs() == [("refs/bundles/main", OID_A), ("refs/bundles/topic/x", OID_C)]


def test_refetch_advances_refs_and_keeps_single_config_entry(repo, settings, make_bundle):
    first = make_bundle("one.bundle", [("refs/heads/main", OID_A)])
    second = make_bundle("two.bundle", [("refs/heads/main", OID_B)], prerequisites=[(OID_A, "")])

    fetch_bundle_uri(repo, str(first), settings=settings)
    res = fetch_bundle_uri(repo, str(second), settings=settings)

    assert repo.refs.read_ref("refs/bundles/main") == OID_B
    assert res.updated_refs[0].old_oid == OID_A
    assert [r[:2] for r in repo.refs.reflog("refs/bundles/main")] == [(None, OID_A), (OID_A, OID_B)]
    assert repo.config.get_all(EXCLUDE_DECORATION_KEY) == [EXCLUDE_DECORATION_VALUE]


def test_https_with_helper_lacking_get_fails_cleanly(repo, settings, make_helper):
    script, log_file = make_helper(caps=("fetch",))
    s = settings.model_copy(update={"remote_helper": str(script)})

    with pytest.raises(InsufficientCapabilitiesError):
        fetch_bundle_uri(repo, "https://example.com/b.bundle", settings=s)

    assert repo.refs.list_refs() == []
    assert repo.config.get_all(EXCLUDE_DECORATION_KEY) == []
    assert _staging_files(repo) == []
    assert not any(line.startswith("get ") for line in log_file.read_text("utf-8").splitlines())


def test_https_with_helper_serving_bundle(repo, settings, make_bundle, make_helper):
    b = make_bundle("served.bundle", [("refs/heads/main", OID_A)])
    script, log_file = make_helper(serve_file=b)
    s = settings.model_copy(update={"remote_helper": str(script), "remote_name": "upstream"})

    fetch_bundle_uri(repo, "https://example.com/b.bundle", settings=s)

    assert repo.refs.read_ref("refs/bundles/main") == OID_A
    assert log_file.read_text("utf-8").splitlines()[0] == "argv upstream https://example.com/b.bundle"
    assert _staging_files(repo) == []


def test_transport_failure_leaves_no_trace(repo, settings, temp_dir):
    with pytest.raises(TransportError):
        fetch_bundle_uri(repo, str(temp_dir / "missing.bundle"), settings=settings)
    assert _staging_files(repo) == []
    assert repo.refs.list_refs() == []


def test_non_bundle_download_is_rejected(repo, settings, temp_dir):
    page = temp_dir / "index.html"
    page.write_text("<html>404</html>\n", encoding="utf-8")

    with pytest.raises(NotABundleError):
        fetch_bundle_uri(repo, f"file://{page}", settings=settings)
    assert _staging_files(repo) == []
    assert repo.config.get_all(EXCLUDE_DECORATION_KEY) == []


def test_corrupt_pack_is_ingest_error(repo, settings, make_bundle):
    b = make_bundle("bad.bundle", [("refs/heads/main", OID_A)], pack=b"PACK" + b"\x00" * 40)

    with pytest.raises(IngestError):
        fetch_bundle_uri(repo, str(b), settings=settings)
    assert repo.refs.list_refs() == []
    assert _staging_files(repo) == []


def test_missing_prerequisite_is_ingest_error(repo, settings, make_bundle):
    b = make_bundle("inc.bundle", [("refs/heads/main", OID_B)], prerequisites=[(OID_A, "base")])

    with pytest.raises(IngestError):
        fetch_bundle_uri(repo, str(b), settings=settings)
    assert repo.refs.list_refs() == []


def test_ref_moving_underneath_is_fatal_and_not_recoverable(repo, settings, make_bundle, monkeypatch):
    b = make_bundle("b.bundle", [("refs/heads/main", OID_A), ("refs/heads/next", OID_B)])
    repo.refs.update_ref("refs/bundles/next", OID_C, None, message="elsewhere", skip_oid_verification=True)

    real_read = repo.refs.read_ref

    def stale_read(name):
        # Pretend refs/bundles/next was still absent when we looked.
        return None if name == "refs/bundles/next" else real_read(name)

    monkeypatch.setattr(repo.refs, "read_ref", stale_read)

    with pytest.raises(RefUpdateError) as ei:
        fetch_bundle_uri(repo, str(b), settings=settings)
    assert not isinstance(ei.value, BundleURIError)
    assert ei.value.refname == "refs/bundles/next"

    # Refs written before the failure stay; the conflicting one is untouched.
    assert real_read("refs/bundles/main") == OID_A
    assert real_read("refs/bundles/next") == OID_C
    assert repo.config.get_all(EXCLUDE_DECORATION_KEY) == []
    assert _staging_files(repo) == []


def test_find_temp_filename_leaves_no_file(repo):
    p = find_temp_filename(repo)
    assert p.parent == repo.objects.root / "bundles"
    assert p.name.startswith("tmp_uri_")
    assert not p.exists()
    assert find_temp_filename(repo) != p


def test_fetch_bundle_tracks_file_only_while_in_flight(repo, settings, make_bundle, monkeypatch):
    b = make_bundle("b.bundle", [("refs/heads/main", OID_A)])
    info = RemoteBundleInfo(id="base", uri=str(b))

    import bundleuri.core.fetch as fetch_mod

    seen = []
    real_materialize = fetch_mod.materialize

    def spy(uri, dest, *, settings=None):
        seen.append(info.file)
        real_materialize(uri, dest, settings=settings)

    monkeypatch.setattr(fetch_mod, "materialize", spy)

    fetch_bundle(repo, info, settings=settings)

    assert len(seen) == 1 and "tmp_uri_" in seen[0]
    assert info.file is None
    assert repo.refs.read_ref("refs/bundles/main") == OID_A


def test_fetch_bundle_without_uri(repo, settings):
    with pytest.raises(ValueError):
        fetch_bundle(repo, RemoteBundleInfo(id="empty"), settings=settings)


def test_fetch_emits_start_and_end_events(repo, settings, make_bundle, caplog):
    b = make_bundle("b.bundle", [("refs/heads/main", OID_A)])
    caplog.set_level(logging.INFO, logger="bundleuri")

    fetch_bundle_uri(repo, str(b), settings=settings)

    messages = [r.getMessage() for r in caplog.records]
    assert any(m.startswith("bundle_fetch_start ") for m in messages)
    assert any(m.startswith("bundle_ref_updated ") and "refs/bundles/main" in m for m in messages)
    assert any(m.startswith("bundle_fetch_end ") and "status=SUCCESS" in m for m in messages)


def test_failed_fetch_end_event_is_a_warning(repo, settings, temp_dir, caplog):
    caplog.set_level(logging.INFO, logger="bundleuri")
    with pytest.raises(TransportError):
        fetch_bundle_uri(repo, str(temp_dir / "nope"), settings=settings)

    ends = [r for r in caplog.records if r.getMessage().startswith("bundle_fetch_end ")]
    assert len(ends) == 1
    assert ends[0].levelno == logging.WARNING
    assert "status=FAILED" in ends[0].getMessage()
