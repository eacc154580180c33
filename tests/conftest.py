"""Shared test fixtures for the Slack → Notion relay."""

from __future__ import annotations

import json
import logging
import time
from typing import Any
from urllib.parse import urlencode

import pytest

from src.audit.context import RequestContext
from src.audit.logger import EventLogger
from src.webhook.signature import compute_signature

SIGNING_SECRET = "8f742231b10e8888abcd99yyyzzz85a5"


@pytest.fixture
def events() -> EventLogger:
    return EventLogger(logging.getLogger("tests.events"))


@pytest.fixture
def ctx(events: EventLogger) -> RequestContext:
    return RequestContext(events, request_id="test-request")


@pytest.fixture
def debug_ctx() -> RequestContext:
    return RequestContext(
        EventLogger(logging.getLogger("tests.events"), debug=True),
        request_id="debug-request",
    )


# --- Factory functions for test data ---


def make_message_action(**kwargs: Any) -> dict[str, Any]:
    """Factory for a message_action payload with sensible defaults."""
    payload: dict[str, Any] = {
        "type": "message_action",
        "trigger_id": "13345224609.738474920.8088930838d88f008e0",
        "channel": {"id": "C1"},
        "message": {"ts": "111.222", "text": ""},
    }
    payload.update(kwargs)
    return payload


def make_view_submission(
    task_name: str | None = "Write report",
    permalink: str = "https://x",
    message_text: str = "hi",
    callback_id: str = "task_name_modal",
    private_metadata: str | None = None,
) -> dict[str, Any]:
    """Factory for a view_submission payload with sensible defaults."""
    if private_metadata is None:
        private_metadata = json.dumps(
            {"permalink": permalink, "message_text": message_text},
        )
    return {
        "type": "view_submission",
        "view": {
            "callback_id": callback_id,
            "private_metadata": private_metadata,
            "state": {
                "values": {
                    "task_name_block": {
                        "task_name_input": {
                            "type": "plain_text_input",
                            "value": task_name,
                        },
                    },
                },
            },
        },
    }


def form_body(payload: dict[str, Any] | str) -> bytes:
    raw = payload if isinstance(payload, str) else json.dumps(payload)
    return urlencode({"payload": raw}).encode()


def signed_headers(
    body: bytes,
    secret: str = SIGNING_SECRET,
    timestamp: int | None = None,
) -> dict[str, str]:
    ts = int(time.time()) if timestamp is None else timestamp
    return {
        "x-slack-request-timestamp": str(ts),
        "x-slack-signature": compute_signature(secret, ts, body),
        "content-type": "application/x-www-form-urlencoded",
    }
