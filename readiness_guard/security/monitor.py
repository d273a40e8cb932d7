"""Security layer — Security event monitor.

Records security events (rate-limit hits, CSRF failures, injection attempts,
scanner traffic ...) in a bounded in-memory log, aggregates them for
dashboards and flags IPs whose recent activity crosses a threshold.

The monitor sits beside the request path, never in it: ``log_event`` never
raises.  Export failures are logged and swallowed, and the in-memory log
keeps working.

Blocking heuristic (thresholds configurable through ``MonitoringConfig``):
an IP is flagged when, inside the trailing ``block_window_ms``, it produced
at least ``block_high_severity_threshold`` high/critical events or at least
``block_total_threshold`` events of any severity.

Usage::

    monitor = SecurityMonitor(settings.monitoring, sink=NDJSONEventSink(path))
    monitor.log_event(SecurityEventType.CSRF_ATTACK, SecuritySeverity.HIGH, facts)
    if monitor.should_block_ip(facts.ip):
        ...
"""

from __future__ import annotations

import hashlib
import threading
from collections import Counter, OrderedDict, deque
from datetime import datetime, timezone
from typing import Any

import httpx

from readiness_guard.config import MonitoringConfig
from readiness_guard.events.sink import TOPIC_ALERTS, TOPIC_SECURITY, EventSink, NullEventSink, WebhookEventSink
from readiness_guard.logging import get_logger
from readiness_guard.security.models import (
    Clock,
    RequestFacts,
    SecurityAlert,
    SecurityEvent,
    SecurityEventType,
    SecurityMetrics,
    SecuritySeverity,
    now_ms,
)

log = get_logger(__name__)

_MINUTE_MS = 60 * 1000
_DAY_MS = 24 * 60 * _MINUTE_MS


def default_alerts(webhook_url: str | None = None) -> list[SecurityAlert]:
    rules = [
        (SecurityEventType.RATE_LIMIT_EXCEEDED, 10, 15 * _MINUTE_MS),
        (SecurityEventType.CSRF_ATTACK, 3, 5 * _MINUTE_MS),
        (SecurityEventType.SQL_INJECTION_ATTEMPT, 1, _MINUTE_MS),
        (SecurityEventType.XSS_ATTEMPT, 1, _MINUTE_MS),
        (SecurityEventType.REPEATED_FAILED_REQUESTS, 20, 10 * _MINUTE_MS),
    ]
    return [
        SecurityAlert(event_type, threshold=threshold, window_ms=window_ms, webhook_url=webhook_url)
        for event_type, threshold, window_ms in rules
    ]


# ---------------------------------------------------------------------------
# Event log
# ---------------------------------------------------------------------------


class SecurityEventLog:
    """Append-only, lock-guarded event log.

    Holds at most *max_events* entries (oldest dropped first) and prunes
    entries older than *retention_ms* on every read.
    """

    def __init__(self, max_events: int = 10_000, retention_ms: int = 7 * _DAY_MS) -> None:
        self._events: deque[SecurityEvent] = deque(maxlen=max_events)
        self._retention_ms = retention_ms
        self._lock = threading.Lock()

    def append(self, event: SecurityEvent) -> None:
        with self._lock:
            self._events.append(event)

    def since(self, start: int, now: int) -> list[SecurityEvent]:
        """Events with ``start <= timestamp``, oldest first."""
        with self._lock:
            self._prune(now)
            return [e for e in self._events if e.timestamp >= start]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def _prune(self, now: int) -> None:
        cutoff = now - self._retention_ms
        while self._events and self._events[0].timestamp <= cutoff:
            self._events.popleft()


# ---------------------------------------------------------------------------
# Monitor
# ---------------------------------------------------------------------------


class SecurityMonitor:
    def __init__(
        self,
        config: MonitoringConfig | None = None,
        event_log: SecurityEventLog | None = None,
        sink: EventSink | None = None,
        clock: Clock | None = None,
        auth_cookie_name: str = "sb-access-token",
        http_client: httpx.Client | None = None,
    ) -> None:
        self._config = config or MonitoringConfig()
        self._log = event_log or SecurityEventLog(
            max_events=self._config.max_events,
            retention_ms=self._config.retention_ms,
        )
        self._sink = sink or NullEventSink()
        self._clock = clock or now_ms
        self._auth_cookie_name = auth_cookie_name
        self._http_client = http_client
        self._alerts: dict[SecurityEventType, SecurityAlert] = {
            a.type: a for a in default_alerts(self._config.alert_webhook_url)
        }
        # "{type}:{ip}" -> (count, reset_at), least recently touched first.
        self._alert_counts: OrderedDict[str, tuple[int, int]] = OrderedDict()
        self._alert_lock = threading.Lock()
        self._alert_webhooks: dict[str, WebhookEventSink] = {}

    @property
    def config(self) -> MonitoringConfig:
        return self._config

    @property
    def alerts(self) -> list[SecurityAlert]:
        return list(self._alerts.values())

    @property
    def tracked_alert_keys(self) -> int:
        """Number of ``type:ip`` alert counters currently held."""
        with self._alert_lock:
            return len(self._alert_counts)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def log_event(
        self,
        event_type: SecurityEventType,
        severity: SecuritySeverity,
        facts: RequestFacts | None = None,
        details: dict[str, Any] | None = None,
        blocked: bool = False,
    ) -> SecurityEvent:
        facts = facts or RequestFacts()
        event = SecurityEvent(
            type=event_type,
            severity=severity,
            timestamp=self._clock(),
            ip=facts.ip,
            user_agent=facts.user_agent,
            path=facts.path,
            method=facts.method,
            details=dict(details or {}),
            blocked=blocked,
            user_id=facts.header("x-user-id"),
            session_id=self._session_id(facts),
        )
        if not self._config.enabled:
            return event

        self._log.append(event)
        log.warning(
            "security_event",
            type=event_type.value,
            severity=severity.value,
            ip=event.ip,
            path=event.path,
            blocked=blocked,
        )
        self._export(TOPIC_SECURITY, event.to_dict())
        self._check_alerts(event)
        return event

    def configure_alert(self, alert: SecurityAlert) -> None:
        """Add or replace the alert rule for ``alert.type``."""
        self._alerts[alert.type] = alert

    def clear(self) -> None:
        self._log.clear()
        with self._alert_lock:
            self._alert_counts.clear()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_events(
        self,
        event_type: SecurityEventType | None = None,
        severity: SecuritySeverity | None = None,
        window_ms: int = _DAY_MS,
        limit: int = 100,
        ip: str | None = None,
    ) -> list[SecurityEvent]:
        """Matching events inside the trailing window, newest first."""
        now = self._clock()
        events = self._log.since(now - window_ms, now)
        if event_type is not None:
            events = [e for e in events if e.type == event_type]
        if severity is not None:
            events = [e for e in events if e.severity == severity]
        if ip is not None:
            events = [e for e in events if e.ip == ip]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]

    def get_metrics(self, window_ms: int = _DAY_MS) -> SecurityMetrics:
        now = self._clock()
        start = now - window_ms
        events = self._log.since(start, now)

        by_type = Counter(e.type.value for e in events)
        by_severity = Counter(e.severity.value for e in events)
        by_ip = Counter(e.ip for e in events)

        return SecurityMetrics(
            total_events=len(events),
            events_by_type=dict(by_type),
            events_by_severity=dict(by_severity),
            top_ips=[{"ip": ip, "count": count} for ip, count in by_ip.most_common(10)],
            unique_ips=len(by_ip),
            blocked_count=sum(1 for e in events if e.blocked),
            window_start=start,
            window_end=now,
        )

    def should_block_ip(self, ip: str) -> bool:
        cfg = self._config
        if not cfg.enabled or not cfg.block_suspicious_ips:
            return False
        now = self._clock()
        recent = [e for e in self._log.since(now - cfg.block_window_ms, now) if e.ip == ip]
        high = sum(1 for e in recent if e.severity.is_high)
        return high >= cfg.block_high_severity_threshold or len(recent) >= cfg.block_total_threshold

    def ip_summary(self, ip: str, window_ms: int = _DAY_MS) -> dict[str, Any]:
        events = self.get_events(window_ms=window_ms, limit=self._config.max_events, ip=ip)
        return {
            "ip": ip,
            "blocked": self.should_block_ip(ip),
            "total_events": len(events),
            "events_by_type": dict(Counter(e.type.value for e in events)),
            "events_by_severity": dict(Counter(e.severity.value for e in events)),
            "recent_events": [e.to_dict() for e in events[:20]],
        }

    def generate_security_report(self, window_ms: int = _DAY_MS) -> dict[str, Any]:
        """Read-only snapshot for dashboards."""
        metrics = self.get_metrics(window_ms)
        recent = self.get_events(window_ms=window_ms, limit=50)
        return {
            "summary": {
                "time_window": {
                    "start": _iso(metrics.window_start),
                    "end": _iso(metrics.window_end),
                },
                "total_events": metrics.total_events,
                "blocked_requests": metrics.blocked_count,
                "unique_ips": metrics.unique_ips,
                "top_ips": metrics.top_ips,
            },
            "events_by_type": metrics.events_by_type,
            "events_by_severity": metrics.events_by_severity,
            "recent_events": [
                {
                    "type": e.type.value,
                    "severity": e.severity.value,
                    "timestamp": _iso(e.timestamp),
                    "ip": e.ip,
                    "path": e.path,
                    "blocked": e.blocked,
                }
                for e in recent
            ],
            "alert_configuration": [a.to_dict() for a in self.alerts],
        }

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _check_alerts(self, event: SecurityEvent) -> None:
        alert = self._alerts.get(event.type)
        if alert is None or not alert.enabled:
            return

        key = f"{alert.type.value}:{event.ip}"
        with self._alert_lock:
            self._prune_alert_counts(event.timestamp)
            count, reset_at = self._alert_counts.pop(key, (0, 0))
            if reset_at <= event.timestamp:
                count, reset_at = 0, event.timestamp + alert.window_ms
            count += 1
            fired = count >= alert.threshold
            if not fired:
                self._alert_counts[key] = (count, reset_at)
                while len(self._alert_counts) > self._config.max_events:
                    self._alert_counts.popitem(last=False)

        if fired:
            log.error(
                "security_alert",
                alert=alert.type.value,
                severity=event.severity.value,
                threshold=alert.threshold,
                actual_count=count,
                window_ms=alert.window_ms,
                ip=event.ip,
                path=event.path,
            )
            payload = {
                "alert": alert.type.value,
                "threshold": alert.threshold,
                "actual_count": count,
                "window_ms": alert.window_ms,
                "event": event.to_dict(),
            }
            self._export(TOPIC_ALERTS, dict(payload))
            if alert.webhook_url:
                self._export(TOPIC_ALERTS, payload, sink=self._alert_webhook(alert.webhook_url))

    def _prune_alert_counts(self, now: int) -> None:
        # Entries are kept in touch order; expired ones accumulate at the head.
        while self._alert_counts:
            key, (_, reset_at) = next(iter(self._alert_counts.items()))
            if reset_at > now:
                break
            del self._alert_counts[key]

    def _alert_webhook(self, url: str) -> WebhookEventSink:
        sink = self._alert_webhooks.get(url)
        if sink is None:
            sink = WebhookEventSink(
                url,
                timeout=self._config.webhook_timeout_seconds,
                client=self._http_client,
            )
            self._alert_webhooks[url] = sink
        return sink

    def _export(self, topic: str, payload: dict[str, Any], sink: EventSink | None = None) -> None:
        try:
            (sink or self._sink).emit(topic, payload)
        except Exception as exc:
            log.error("security_event_export_failed", topic=topic, error=str(exc))

    def _session_id(self, facts: RequestFacts) -> str | None:
        cookie = facts.cookies.get(self._auth_cookie_name)
        if not cookie:
            return None
        return hashlib.sha256(cookie.encode()).hexdigest()[:16]


def _iso(ts_ms: int) -> str:
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc).isoformat()
