"""Event export layer — pluggable sinks for security events.

Current implementations:
  - NullEventSink   — default, discards all events
  - NDJSONEventSink — NDJSON append-only file
  - WebhookEventSink — JSON POST to an HTTP endpoint
  - FanoutEventSink — broadcasts to multiple sinks

Quick start::

    from readiness_guard.events import NDJSONEventSink, TOPIC_SECURITY

    sink = NDJSONEventSink(Path("~/.readiness/security-events.ndjson"))
    sink.emit(TOPIC_SECURITY, {"type": "csrf_attack", "ip": "10.0.0.1"})
"""

from readiness_guard.events.sink import (
    TOPIC_ALERTS,
    TOPIC_SECURITY,
    EventSink,
    FanoutEventSink,
    NDJSONEventSink,
    NullEventSink,
    WebhookEventSink,
)

__all__ = [
    # Interface
    "EventSink",
    # Implementations
    "NullEventSink",
    "NDJSONEventSink",
    "FanoutEventSink",
    "WebhookEventSink",
    # Topic constants
    "TOPIC_SECURITY",
    "TOPIC_ALERTS",
]
