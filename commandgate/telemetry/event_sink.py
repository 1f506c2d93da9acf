"""Event sink implementations for exporting decision events."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Protocol

import requests

from commandgate.core.config import Settings, settings


class EventSink(Protocol):
    """Abstract sink contract."""

    def publish(self, event: dict) -> None:  # pragma: no cover - interface
        ...

    def close(self) -> None:  # pragma: no cover - interface
        ...


class NullEventSink:
    """No-op sink used when telemetry is disabled."""

    def publish(self, event: dict) -> None:
        return None

    def close(self) -> None:
        return None


class FileEventSink:
    """Appends events to a newline-delimited JSON file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def publish(self, event: dict) -> None:
        payload = json.dumps(event, separators=(",", ":"), sort_keys=True, default=str)
        with self._lock, self.path.open("a", encoding="utf-8") as handle:
            handle.write(payload)
            handle.write("\n")

    def close(self) -> None:
        return None


class WebhookEventSink:
    """Posts batches of events as a JSON array to an HTTP endpoint."""

    def __init__(self, url: str, *, batch_size: int = 25, timeout: float = 10.0) -> None:
        self._url = url
        self._batch_size = max(batch_size, 1)
        self._timeout = timeout
        self._buffer: list[dict] = []
        self._lock = threading.Lock()
        self._session = requests.Session()

    def publish(self, event: dict) -> None:
        with self._lock:
            self._buffer.append(json.loads(json.dumps(event, default=str)))
            if len(self._buffer) >= self._batch_size:
                self._flush_locked()

    def flush(self) -> None:
        with self._lock:
            self._flush_locked()

    def close(self) -> None:
        self.flush()
        self._session.close()

    def _flush_locked(self) -> None:
        if not self._buffer:
            return
        batch = list(self._buffer)
        response = self._session.post(
            self._url,
            json=batch,
            headers={"Content-Type": "application/json"},
            timeout=self._timeout,
        )
        if response.status_code >= 400:
            raise RuntimeError(f"Event webhook rejected batch ({response.status_code}): {response.text}")
        del self._buffer[: len(batch)]


def sink_from_settings(config: Settings | None = None) -> EventSink:
    """Factory to construct an event sink based on app settings."""

    config = config or settings
    backend = config.event_sink_backend.lower().strip()
    if backend == "file":
        return FileEventSink(config.event_sink_path)
    if backend == "webhook":
        if not config.event_sink_url:
            raise ValueError("Webhook backend requires COMMANDGATE_EVENT_SINK_URL")
        return WebhookEventSink(config.event_sink_url, batch_size=config.event_sink_batch_size)
    if backend in {"off", "none", "disabled"}:
        return NullEventSink()
    raise ValueError(f"Unsupported event sink backend: {config.event_sink_backend}")
