"""Event export — EventSink protocol and implementations.

The security monitor keeps its own bounded in-memory log for analytics and
additionally forwards every event to an EventSink so that operators can ship
them elsewhere (file, log pipeline, SIEM) without touching the monitor.

Swap the backend by injecting a different EventSink implementation:
  - NullEventSink    → default (no-op)
  - NDJSONEventSink  → append-only NDJSON file, one line per event
  - WebhookEventSink → JSON POST per event over httpx
  - FanoutEventSink  → broadcast to several sinks

Sinks are synchronous: events are emitted from the request path, which never
yields between a decision and its bookkeeping.
"""

from __future__ import annotations

import json
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import httpx

from readiness_guard.logging import get_logger

log = get_logger(__name__)

TOPIC_SECURITY = "readiness.security"
TOPIC_ALERTS = "readiness.alerts"


class EventSink(ABC):
    """Abstract event sink.

    An event is a plain dict.  The sink adds ``_topic`` and ``_timestamp``
    (Unix epoch float) before writing.
    """

    @abstractmethod
    def emit(self, topic: str, event: dict[str, Any]) -> None:
        """Publish *event* to *topic*.

        Implementations log and swallow their own I/O failures.  Callers
        still guard the call, since third-party sinks may not.
        """

    def _stamp(self, topic: str, event: dict[str, Any]) -> dict[str, Any]:
        event.setdefault("_topic", topic)
        event.setdefault("_timestamp", time.time())
        return event


class NullEventSink(EventSink):
    """Discards all events."""

    def emit(self, topic: str, event: dict[str, Any]) -> None:
        pass


class NDJSONEventSink(EventSink):
    """Writes events as NDJSON to a file — one line per event, append-only.

    Usage::

        sink = NDJSONEventSink(Path("~/.readiness/security-events.ndjson"))
        sink.emit(TOPIC_SECURITY, event.to_dict())
    """

    def __init__(self, path: Path) -> None:
        self._file = path.expanduser()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._file

    def emit(self, topic: str, event: dict[str, Any]) -> None:
        self._stamp(topic, event)
        line = json.dumps(event, default=str) + "\n"
        with self._lock:
            try:
                self._file.parent.mkdir(parents=True, exist_ok=True)
                with self._file.open("a", encoding="utf-8") as f:
                    f.write(line)
            except OSError as exc:
                log.error("event_sink_write_failed", topic=topic, error=str(exc))


class FanoutEventSink(EventSink):
    """Routes each event to several sinks.  One failing sink does not stop
    the others."""

    def __init__(self, sinks: list[EventSink]) -> None:
        self._sinks = sinks

    def emit(self, topic: str, event: dict[str, Any]) -> None:
        self._stamp(topic, event)
        for sink in self._sinks:
            try:
                sink.emit(topic, dict(event))
            except Exception as exc:
                log.error(
                    "event_sink_fanout_failed",
                    sink=type(sink).__name__,
                    topic=topic,
                    error=str(exc),
                )


class WebhookEventSink(EventSink):
    """POSTs each event as JSON to an HTTP endpoint (SIEM, chat hook, log
    collector).

    Delivery is best effort: transport errors and non-2xx answers are logged
    and dropped.  Pass *client* to share a connection pool or to inject a
    mock transport.

    Usage::

        sink = WebhookEventSink("https://siem.example.com/ingest", token="s3cret")
        sink.emit(TOPIC_ALERTS, {"alert": "csrf_attack", "ip": "10.0.0.1"})
    """

    def __init__(
        self,
        url: str,
        token: str | None = None,
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._url = url
        self._headers = headers
        self._http = client or httpx.Client(timeout=timeout)

    @property
    def url(self) -> str:
        return self._url

    def emit(self, topic: str, event: dict[str, Any]) -> None:
        self._stamp(topic, event)
        try:
            resp = self._http.post(
                self._url,
                content=json.dumps(event, default=str),
                headers=self._headers,
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            log.error("event_sink_webhook_failed", topic=topic, url=self._url, error=str(exc))

    def close(self) -> None:
        self._http.close()
