"""Shared Pydantic data models for the Slack → Notion relay."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# --- Enums ---


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    RETRYABLE_ERROR = "retryable_error"
    FATAL_ERROR = "fatal_error"


class EventStatus(str, Enum):
    OK = "ok"
    FAILURE = "failure"
    REJECTED = "rejected"
    IGNORED = "ignored"


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


# --- Correlation Models ---


class CorrelationMetadata(BaseModel):
    """State carried through Slack's private_metadata between form open and submit."""

    model_config = ConfigDict(frozen=True)

    permalink: str
    message_text: str

    def dumps(self) -> str:
        return json.dumps(
            {"permalink": self.permalink, "message_text": self.message_text},
            separators=(",", ":"),
        )

    @classmethod
    def loads(cls, raw: str) -> CorrelationMetadata:
        return cls.model_validate_json(raw)


# --- Delivery Models ---


class OutboundAttempt(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    attempt_number: int = Field(ge=1)
    max_attempts: int = Field(ge=1)
    started_at: str
    outcome: AttemptOutcome
    latency_ms: float = Field(ge=0)
    status_code: int | None = None


# --- Event Models ---


class LogEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    request_id: str
    event: str
    status: str | None = None
    detail: dict[str, object] | None = None
