from __future__ import annotations

import copy
import json
import logging
import sys
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Deque, Dict, List, Optional, TextIO

CONTEXT_FIELDS = ("tenant_id", "run_id")


@dataclass
class AuditEvent:
    timestamp: str
    level: str
    message: str
    tenant_id: Optional[str] = None
    run_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class InMemoryAuditStore:
    """Bounded buffer of audit events, newest first."""

    def __init__(self, max_events: int = 1000):
        self._events: Deque[AuditEvent] = deque(maxlen=max_events)
        self._lock = Lock()

    def append(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.appendleft(event)

    def list(self, limit: int = 100) -> List[AuditEvent]:
        with self._lock:
            return list(self._events)[:limit]

    def messages(self, run_id: Optional[str] = None) -> List[str]:
        """Event names in emission order, optionally restricted to one run."""
        with self._lock:
            events = list(reversed(self._events))
        return [event.message for event in events if run_id is None or event.run_id == run_id]


class JsonAuditLogger:
    """Structured logger for provisioning and reconciliation events.

    Events go to stdout as one JSON object per line and, when a store is
    given, into the store as well. ``bind`` returns a logger that stamps
    fixed fields (tenant, run, ...) onto every event it writes, so the
    managers of one run never pass those fields around themselves.
    """

    def __init__(
        self,
        name: str = "sender_control",
        level: int = logging.INFO,
        store: Optional[InMemoryAuditStore] = None,
        stream: Optional[TextIO] = None,
    ):
        self.logger = logging.getLogger(name)
        if not self.logger.handlers:
            handler = logging.StreamHandler(stream or sys.stdout)
            handler.setFormatter(_JsonFormatter())
            self.logger.addHandler(handler)
        self.logger.setLevel(level)
        self.logger.propagate = False
        self.store = store
        self.context: Dict[str, Any] = {}

    def bind(self, **context: Any) -> "JsonAuditLogger":
        bound = copy.copy(self)
        bound.context = {**self.context, **{k: v for k, v in context.items() if v is not None}}
        return bound

    def _log(self, level: int, message: str, **kwargs: Any) -> None:
        fields = {**self.context, **kwargs}
        if self.store is not None:
            self.store.append(self._build_event(level, message, fields))
        self.logger.log(level, message, extra={"fields": fields})

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, **kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, **kwargs)

    @staticmethod
    def _build_event(level: int, message: str, fields: Dict[str, Any]) -> AuditEvent:
        return AuditEvent(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=logging.getLevelName(level),
            message=message,
            tenant_id=fields.get("tenant_id"),
            run_id=fields.get("run_id"),
            extra={k: v for k, v in fields.items() if k not in CONTEXT_FIELDS},
        )


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        payload.update(getattr(record, "fields", None) or {})
        return json.dumps(payload, default=str)
