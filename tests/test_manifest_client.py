"""Manifest fetching, caching and artifact resolution."""

import threading
from datetime import datetime, timezone
from pathlib import Path

import pytest
import requests

from branchdex.app.cache import IndexCache
from branchdex.app.manifest_client import ManifestClient
from branchdex.index.errors import (
    ManifestInvalid,
    ManifestNotFound,
    SearchCancelled,
    SearchIndexDisabled,
)
from branchdex.index.manifest import write_manifest
from branchdex.index.models import BranchEntry, Manifest
from branchdex.utils.cancellation import CancelToken

WHEN = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _entry(hash_value: str, artifact: str = "/search-index/main/docfind.js") -> BranchEntry:
    return BranchEntry(
        artifact_path=artifact, hash=hash_value, document_count=3, generated_at=WHEN
    )


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class _Response:
    def __init__(self, status_code: int, content: bytes = b"") -> None:
        self.status_code = status_code
        self.content = content


class _Session:
    def __init__(self, response=None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.calls = 0
        self.release = threading.Event()
        self.block = False

    def get(self, url, **kwargs):
        self.calls += 1
        if self.block:
            self.release.wait(5)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def clock() -> _Clock:
    return _Clock()


@pytest.fixture
def manifest_path(temp_dir: Path) -> Path:
    path = temp_dir / "search-index" / "manifest.json"
    write_manifest(path, Manifest(generated_at=WHEN, branches={"main": _entry("aaa")}))
    return path


def test_local_manifest_is_cached_until_interval_expires(manifest_path, clock):
    client = ManifestClient(
        location=str(manifest_path), cache=IndexCache(clock=clock), refresh_interval_ms=1000
    )

    assert client.fetch_manifest().branches["main"].hash == "aaa"

    write_manifest(manifest_path, Manifest(generated_at=WHEN, branches={"main": _entry("bbb")}))
    clock.now += 0.5
    assert client.fetch_manifest().branches["main"].hash == "aaa"

    clock.now += 1.0
    assert client.fetch_manifest().branches["main"].hash == "bbb"


def test_force_bypasses_cache(manifest_path, clock):
    client = ManifestClient(location=str(manifest_path), cache=IndexCache(clock=clock))
    client.fetch_manifest()

    write_manifest(manifest_path, Manifest(generated_at=WHEN, branches={"main": _entry("ccc")}))

    assert client.fetch_manifest(force=True).branches["main"].hash == "ccc"


def test_disabled_client_performs_no_io(temp_dir):
    session = _Session(_Response(200, b"{}"))
    client = ManifestClient(
        location="https://cdn.example.com/manifest.json",
        cache=IndexCache(),
        enabled=False,
        session=session,
    )

    with pytest.raises(SearchIndexDisabled):
        client.fetch_manifest()
    assert session.calls == 0


def test_missing_local_manifest(temp_dir):
    client = ManifestClient(location=str(temp_dir / "nope.json"), cache=IndexCache())

    with pytest.raises(ManifestNotFound):
        client.fetch_manifest()


def test_unreadable_local_manifest_is_not_found(temp_dir):
    client = ManifestClient(location=str(temp_dir), cache=IndexCache())

    with pytest.raises(ManifestNotFound) as excinfo:
        client.fetch_manifest()

    assert isinstance(excinfo.value.details.cause, OSError)
    assert excinfo.value.details.status is None


@pytest.mark.parametrize(
    ("session", "error"),
    [
        (_Session(_Response(404)), ManifestNotFound),
        (_Session(_Response(503)), ManifestNotFound),
        (_Session(error=requests.ConnectionError("down")), ManifestNotFound),
        (_Session(_Response(200, b"<html>")), ManifestInvalid),
        (_Session(_Response(200, b'{"schemaVersion": "v0", "branches": {}}')), ManifestInvalid),
    ],
)
def test_http_failures_map_to_manifest_errors(session, error):
    client = ManifestClient(
        location="https://cdn.example.com/search-index/manifest.json",
        cache=IndexCache(),
        session=session,
    )

    with pytest.raises(error):
        client.fetch_manifest()
    assert client.cache.peek_manifest() is None


def test_http_manifest_is_parsed():
    body = Manifest(generated_at=WHEN, branches={"main": _entry("abc")}).model_dump_json(
        by_alias=True
    )
    client = ManifestClient(
        location="https://cdn.example.com/search-index/manifest.json",
        cache=IndexCache(),
        session=_Session(_Response(200, body.encode())),
    )

    assert client.fetch_manifest().branches["main"].hash == "abc"


def test_cancelled_fetch_rejects_promptly_and_leaves_cache_empty():
    session = _Session(_Response(200, b'{"schemaVersion": "docfind-1", "branches": {}}'))
    session.block = True
    client = ManifestClient(
        location="https://cdn.example.com/manifest.json", cache=IndexCache(), session=session
    )
    token = CancelToken()
    timer = threading.Timer(0.05, token.cancel)
    timer.start()

    try:
        with pytest.raises(SearchCancelled):
            client.fetch_manifest(token)
        assert client.cache.peek_manifest() is None
    finally:
        session.release.set()
        timer.cancel()

    assert client.cache.peek_manifest() is None


def test_resolve_artifact_local_layout(manifest_path):
    client = ManifestClient(location=str(manifest_path), cache=IndexCache())

    location = client.resolve_artifact(
        "feature/x", _entry("h1", "/search-index/feature/x%20y/docfind.js")
    )

    expected = manifest_path.parent / "feature" / "x y" / "docfind.js"
    assert location.module == str(expected)
    assert location.payload == str(expected.with_name("docfind_bg.wasm"))
    assert location.hash == "h1"
    assert not location.is_remote


def test_resolve_artifact_http_appends_cache_buster():
    client = ManifestClient(
        location="https://cdn.example.com/search-index/manifest.json", cache=IndexCache()
    )

    location = client.resolve_artifact("main", _entry("h2"))

    assert location.module == "https://cdn.example.com/search-index/main/docfind.js?v=h2"
    assert location.payload == "https://cdn.example.com/search-index/main/docfind_bg.wasm?v=h2"
    assert location.is_remote
