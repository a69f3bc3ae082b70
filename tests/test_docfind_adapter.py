"""docfind adapter: asset selection, invocation, download and patching."""

import io
import json
import logging
import sys
import tarfile
from pathlib import Path

import pytest
import requests

from branchdex.app.adapters.docfind import (
    MODULE_FILENAME,
    PATCH_REPLACEMENT,
    PATCH_SIGNATURE,
    PAYLOAD_FILENAME,
    DocfindIndexer,
    binary_filename,
    find_executable,
    patch_query_module,
    resolve_asset_name,
)
from branchdex.index.errors import IndexerError


class _StreamResponse:
    def __init__(self, body: bytes, status_code: int = 200) -> None:
        self.body = body
        self.status_code = status_code

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"status {self.status_code}")

    def iter_content(self, chunk_size: int = 1):
        for start in range(0, len(self.body), chunk_size):
            yield self.body[start : start + chunk_size]


class _Session:
    def __init__(self, response: _StreamResponse) -> None:
        self.response = response
        self.urls: list[str] = []

    def get(self, url, **kwargs):
        self.urls.append(url)
        return self.response


def _tarball(member: str, data: bytes) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as bundle:
        info = tarfile.TarInfo(member)
        info.size = len(data)
        info.mode = 0o644
        bundle.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.mark.parametrize(
    ("system", "machine", "expected"),
    [
        ("Linux", "x86_64", "docfind-x86_64-unknown-linux-musl.tar.gz"),
        ("Linux", "aarch64", "docfind-aarch64-unknown-linux-musl.tar.gz"),
        ("Darwin", "arm64", "docfind-aarch64-apple-darwin.tar.gz"),
        ("Windows", "AMD64", "docfind-x86_64-pc-windows-msvc.zip"),
    ],
)
def test_resolve_asset_name(system, machine, expected):
    assert resolve_asset_name(system, machine) == expected


def test_unsupported_platforms_raise():
    with pytest.raises(IndexerError):
        resolve_asset_name("Linux", "riscv64")
    with pytest.raises(IndexerError):
        resolve_asset_name("SunOS", "x86_64")


def test_find_executable(temp_dir: Path):
    (temp_dir / "docfind-x86_64" / "docs").mkdir(parents=True)
    (temp_dir / "docfind-x86_64" / "README.md").write_text("readme")
    (temp_dir / "docfind-x86_64" / "docfind").write_bytes(b"\x7fELF")

    assert find_executable(temp_dir) == temp_dir / "docfind-x86_64" / "docfind"
    assert find_executable(temp_dir, windows=True) is None
    assert binary_filename("Windows") == "docfind.exe"


def test_patch_query_module_rewrites_loader(temp_dir: Path):
    module = temp_dir / MODULE_FILENAME
    module.write_text(f"const a=1;{PATCH_SIGNATURE}export default U;", encoding="utf-8")

    assert patch_query_module(module) is True
    assert PATCH_REPLACEMENT in module.read_text(encoding="utf-8")
    assert PATCH_SIGNATURE not in module.read_text(encoding="utf-8")


def test_patch_query_module_missing_signature_warns(temp_dir: Path, caplog):
    module = temp_dir / MODULE_FILENAME
    module.write_text("export default function search(){}", encoding="utf-8")

    with caplog.at_level(logging.WARNING):
        assert patch_query_module(module) is False

    assert module.read_text(encoding="utf-8") == "export default function search(){}"
    assert "no loader signature" in caplog.text


def test_run_produces_patched_artifacts(temp_dir: Path, fake_indexer_command):
    documents = temp_dir / "documents.json"
    documents.write_text(json.dumps([{"path": "README.md"}]), encoding="utf-8")
    output = temp_dir / "out" / "main"

    indexer = DocfindIndexer(fake_indexer_command, work_dir=temp_dir / ".docfind")
    artifacts = indexer.run(documents, output)

    assert artifacts.module_path == output / MODULE_FILENAME
    assert artifacts.payload_path == output / PAYLOAD_FILENAME
    assert artifacts.patched is True
    assert artifacts.payload_path.read_bytes() == documents.read_bytes()


def test_run_failure_raises_indexer_error(temp_dir: Path):
    documents = temp_dir / "documents.json"
    documents.write_text("[]", encoding="utf-8")

    failing = DocfindIndexer([sys.executable, "-c", "import sys; sys.exit(3)"])
    with pytest.raises(IndexerError, match="exited with 3"):
        failing.run(documents, temp_dir / "out")

    silent = DocfindIndexer([sys.executable, "-c", "pass"])
    with pytest.raises(IndexerError, match="produced no"):
        silent.run(documents, temp_dir / "out")


def test_download_binary_installs_executable(temp_dir: Path):
    archive = _tarball("docfind-x86_64-unknown-linux-musl/docfind", b"#!/bin/sh\n")
    session = _Session(_StreamResponse(archive))
    indexer = DocfindIndexer(
        work_dir=temp_dir / ".docfind",
        release_url="https://releases.example.com/download/",
        session=session,
        system="Linux",
        machine="x86_64",
    )

    command = indexer.ensure_command()

    assert command == [str(temp_dir / ".docfind" / "bin" / "docfind")]
    assert indexer.cached_binary.read_bytes() == b"#!/bin/sh\n"
    assert session.urls == [
        "https://releases.example.com/download/docfind-x86_64-unknown-linux-musl.tar.gz"
    ]

    # Cached binary is reused without another download.
    assert DocfindIndexer(
        work_dir=temp_dir / ".docfind", session=session, system="Linux", machine="x86_64"
    ).ensure_command() == command
    assert len(session.urls) == 1


def test_download_failure_raises_indexer_error(temp_dir: Path):
    indexer = DocfindIndexer(
        work_dir=temp_dir / ".docfind",
        session=_Session(_StreamResponse(b"", status_code=404)),
        system="Linux",
        machine="x86_64",
    )

    with pytest.raises(IndexerError, match="Failed to download"):
        indexer.download_binary()
