import json
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

from commandgate.core.config import Settings
from commandgate.telemetry import FileEventSink, NullEventSink, WebhookEventSink, sink_from_settings


def test_file_event_sink_appends_json_lines(tmp_path: Path):
    sink_path = tmp_path / "nested" / "events.jsonl"
    sink = FileEventSink(sink_path)

    sink.publish({"event_type": "command_decision", "decision_id": "dc_1", "allowed": True})
    sink.publish({"event_type": "command_decision", "timestamp": datetime(2024, 1, 1, tzinfo=timezone.utc)})

    lines = sink_path.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 2
    assert json.loads(lines[0])["decision_id"] == "dc_1"
    assert json.loads(lines[1])["timestamp"] == "2024-01-01 00:00:00+00:00"


class _RecordingSession:
    def __init__(self, status_code=202):
        self.status_code = status_code
        self.posts = []
        self.closed = False

    def post(self, url, json=None, headers=None, timeout=None):
        self.posts.append((url, json))
        return SimpleNamespace(status_code=self.status_code, text="rejected")

    def close(self):
        self.closed = True


def test_webhook_sink_batches_and_flushes_on_close():
    sink = WebhookEventSink("https://hooks.example.com/decisions", batch_size=2)
    session = _RecordingSession()
    sink._session = session

    sink.publish({"decision_id": "dc_1"})
    assert session.posts == []
    sink.publish({"decision_id": "dc_2"})
    sink.publish({"decision_id": "dc_3"})
    sink.close()

    assert session.posts == [
        ("https://hooks.example.com/decisions", [{"decision_id": "dc_1"}, {"decision_id": "dc_2"}]),
        ("https://hooks.example.com/decisions", [{"decision_id": "dc_3"}]),
    ]
    assert session.closed


def test_webhook_sink_raises_on_rejected_batch():
    sink = WebhookEventSink("https://hooks.example.com/decisions", batch_size=1)
    sink._session = _RecordingSession(status_code=500)

    with pytest.raises(RuntimeError, match="500"):
        sink.publish({"decision_id": "dc_1"})


def test_sink_from_settings_variants(tmp_path: Path):
    file_sink = sink_from_settings(Settings(event_sink_backend="file", event_sink_path=str(tmp_path / "e.jsonl")))
    assert isinstance(file_sink, FileEventSink)
    assert isinstance(sink_from_settings(Settings(event_sink_backend="off")), NullEventSink)
    webhook = sink_from_settings(Settings(event_sink_backend="webhook", event_sink_url="https://hooks.example.com"))
    assert isinstance(webhook, WebhookEventSink)


def test_sink_from_settings_rejects_bad_configuration():
    with pytest.raises(ValueError, match="COMMANDGATE_EVENT_SINK_URL"):
        sink_from_settings(Settings(event_sink_backend="webhook", event_sink_url=None))
    with pytest.raises(ValueError, match="Unsupported event sink backend"):
        sink_from_settings(Settings(event_sink_backend="kafka"))


def test_webhook_sink_keeps_rejected_batch_for_retry():
    sink = WebhookEventSink("https://hooks.example.com/decisions", batch_size=5)
    session = _RecordingSession(status_code=503)
    sink._session = session
    sink.publish({"decision_id": "dc_1"})

    with pytest.raises(RuntimeError):
        sink.flush()
    session.status_code = 202
    sink.flush()

    assert session.posts == [
        ("https://hooks.example.com/decisions", [{"decision_id": "dc_1"}]),
        ("https://hooks.example.com/decisions", [{"decision_id": "dc_1"}]),
    ]
    assert session.posts[0][1] is not session.posts[1][1]
