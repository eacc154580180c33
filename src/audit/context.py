"""Per-request correlation id and event logging."""

from __future__ import annotations

import logging
import secrets
import time

from src.audit.logger import EventLogger
from src.models import AttemptOutcome, EventStatus, LogEvent, OutboundAttempt


def new_request_id() -> str:
    """Millisecond clock prefix plus a short random suffix.

    Only labels log lines, so an occasional collision is harmless.
    """
    return f"{int(time.time() * 1000):x}-{secrets.token_hex(3)}"


class RequestContext:
    """Lives for exactly one inbound request."""

    def __init__(self, events: EventLogger, request_id: str | None = None) -> None:
        self.events = events
        self.request_id = request_id or new_request_id()
        self.attempts: list[OutboundAttempt] = []

    @property
    def debug(self) -> bool:
        return self.events.debug

    def log_event(
        self,
        event: str,
        status: EventStatus | str | None = None,
        detail: dict[str, object] | None = None,
        level: int = logging.INFO,
    ) -> None:
        if isinstance(status, EventStatus):
            status = status.value
        self.events.emit(
            LogEvent(
                request_id=self.request_id,
                event=event,
                status=status,
                detail=detail,
            ),
            level=level,
        )

    def record_attempt(self, attempt: OutboundAttempt) -> None:
        self.attempts.append(attempt)
        self.log_event(
            "outbound_attempt",
            status=attempt.outcome.value,
            detail={
                "label": attempt.label,
                "attempt": attempt.attempt_number,
                "max_attempts": attempt.max_attempts,
                "latency_ms": round(attempt.latency_ms, 1),
                "status_code": attempt.status_code,
            },
            level=(
                logging.INFO
                if attempt.outcome == AttemptOutcome.SUCCESS
                else logging.WARNING
            ),
        )

    def attempts_for(self, label: str) -> list[OutboundAttempt]:
        return [a for a in self.attempts if a.label == label]
