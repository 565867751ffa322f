# pylint: disable=missing-module-docstring,missing-function-docstring

from typing import Any

import pytest

from observability import metrics


def test_timed_emits_one_metric(monkeypatch: pytest.MonkeyPatch) -> None:
    emitted: list[dict[str, Any]] = []
    monkeypatch.setattr(metrics, "log_event", emitted.append)

    with metrics.timed("clip_decode", component="player_1", details={"bytes": 10}):
        pass

    assert len(emitted) == 1
    event = emitted[0]
    assert event["event_type"] == "METRIC_TIMER"
    assert event["metric"] == "clip_decode"
    assert event["component"] == "player_1"
    assert event["ok"] is True
    assert event["error"] is None
    assert event["details"] == {"bytes": 10}
    assert event["value_ms"] >= 0


def test_timed_marks_failure_and_reraises(monkeypatch: pytest.MonkeyPatch) -> None:
    emitted: list[dict[str, Any]] = []
    monkeypatch.setattr(metrics, "log_event", emitted.append)

    with pytest.raises(ValueError):
        with metrics.timed("live_connect"):
            raise ValueError("boom")

    assert len(emitted) == 1
    assert emitted[0]["ok"] is False
    assert emitted[0]["error"] == "ValueError"
    assert emitted[0]["details"] == {}
