"""Cancellation, gating, atomic writes and CLI output helpers."""

import json
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from pathlib import Path

import pytest

from branchdex.index.errors import SearchCancelled
from branchdex.utils.atomic import atomic_open, atomic_write_json
from branchdex.utils.cancellation import CancelToken
from branchdex.utils.cli_output import json_response
from branchdex.utils.gating import GenerationGate, detect_generation_context
from branchdex.utils.paths import branch_slug, branch_url_path, file_extension, split_list


def test_cancel_token_wait_for_returns_result():
    token = CancelToken()
    with ThreadPoolExecutor(max_workers=1) as pool:
        assert token.wait_for(pool.submit(lambda: 42)) == 42


def test_cancel_token_rejects_pending_wait_promptly():
    token = CancelToken()
    pending: Future[int] = Future()
    threading.Timer(0.05, token.cancel, kwargs={"reason": "superseded"}).start()

    started = time.monotonic()
    with pytest.raises(SearchCancelled, match="superseded"):
        token.wait_for(pending)

    assert time.monotonic() - started < 2
    assert token.cancelled
    assert token.reason == "superseded"


def test_cancel_token_timeout_and_sleep():
    token = CancelToken()

    with pytest.raises(TimeoutError):
        token.wait_for(Future(), timeout=0.01)

    token.sleep(0.01)
    calls: list[str] = []
    token.add_callback(lambda: calls.append("fired"))
    token.cancel()
    token.cancel("again")

    with pytest.raises(SearchCancelled):
        token.sleep(5)
    assert calls == ["fired"]
    assert token.reason == "cancelled"


def test_generation_context_detection(monkeypatch):
    monkeypatch.setenv("GITHUB_ACTIONS", "true")
    assert detect_generation_context() == "action"

    monkeypatch.delenv("GITHUB_ACTIONS")
    assert detect_generation_context() == "build"


@pytest.mark.parametrize(
    ("enabled", "mode", "context", "should_run"),
    [
        (True, "build", "build", True),
        (True, "action", "action", True),
        (True, "action", "build", False),
        (True, "off", "build", False),
        (False, "build", "build", False),
    ],
)
def test_generation_gate(enabled, mode, context, should_run):
    gate = GenerationGate(enabled=enabled, mode=mode, context=context)

    assert gate.should_generate() is should_run
    assert (gate.skip_reason() is None) is should_run


def test_gate_from_settings(override_settings):
    gate = GenerationGate.from_settings(override_settings, context="action")

    assert gate.enabled is True
    assert gate.mode == "build"
    assert "running in 'action' context" in gate.skip_reason()


def test_atomic_open_leaves_target_untouched_on_error(temp_dir: Path):
    target = temp_dir / "manifest.json"
    target.write_text("original")

    with pytest.raises(RuntimeError):
        with atomic_open(target) as handle:
            handle.write("partial")
            raise RuntimeError("interrupted")

    assert target.read_text() == "original"
    assert [p.name for p in temp_dir.iterdir()] == ["manifest.json"]


def test_atomic_write_json(temp_dir: Path):
    target = temp_dir / "nested" / "data.json"
    atomic_write_json(target, {"b": 1, "a": [1, 2]})

    assert json.loads(target.read_text(encoding="utf-8")) == {"b": 1, "a": [1, 2]}


def test_json_response_stamps_metadata():
    payload = json.loads(json_response("search_results", 1, keyword="readme", items=[]))

    assert payload["schema_id"] == "search_results"
    assert payload["schema_version"] == 1
    assert payload["producer"].startswith("branchdex-")
    assert payload["keyword"] == "readme"
    datetime.fromisoformat(payload["produced_at"])


def test_path_helpers():
    assert split_list(" main, develop\nfeature/x  main ") == ["main", "develop", "feature/x"]
    assert branch_slug("feature/new ui") == "feature-new ui"
    assert branch_url_path("feature/new ui") == "feature/new%20ui"
    assert file_extension("docs/README.MD") == "md"
    assert file_extension(".gitignore") == ""
    assert file_extension("Makefile") == ""
