"""Slack request signature verification with a replay window.

Slack signs ``v0:<timestamp>:<raw body>`` with HMAC-SHA256 and the app's
signing secret. Requests whose timestamp is more than five minutes away from
the local clock are rejected in either direction.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from collections.abc import Callable, Mapping

from src.audit.context import RequestContext
from src.models import EventStatus
from src.webhook.models import SignatureContext

TIMESTAMP_HEADER = "x-slack-request-timestamp"
SIGNATURE_HEADER = "x-slack-signature"
REPLAY_WINDOW_SECONDS = 300

_VERSION = "v0"
_DEBUG_PREFIX_LEN = 14


def compute_signature(secret: str, timestamp: int | str, body: bytes) -> str:
    """Return the ``v0=<hex>`` signature Slack would send for this body."""
    basestring = f"{_VERSION}:{timestamp}:".encode() + body
    digest = hmac.new(secret.encode(), basestring, hashlib.sha256).hexdigest()
    return f"{_VERSION}={digest}"


def _parse_timestamp(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


class SignatureVerifier:
    """Validates inbound request authenticity and freshness."""

    def __init__(
        self,
        signing_secret: str,
        window_seconds: int = REPLAY_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._signing_secret = signing_secret
        self._window_seconds = window_seconds
        self._clock = clock

    def build_context(
        self, headers: Mapping[str, str], raw_body: bytes,
    ) -> SignatureContext:
        """Collect the signature inputs from request headers and literal body bytes."""
        raw_timestamp = headers.get(TIMESTAMP_HEADER)
        return SignatureContext(
            timestamp=_parse_timestamp(raw_timestamp),
            provided_signature=headers.get(SIGNATURE_HEADER) or None,
            raw_body=raw_body,
            shared_secret=self._signing_secret,
            raw_timestamp=raw_timestamp,
        )

    def verify(self, sig: SignatureContext, ctx: RequestContext) -> bool:
        if ctx.debug:
            ctx.log_event(
                "signature_headers",
                detail={
                    "timestamp": sig.timestamp,
                    "signature_prefix": _prefix(sig.provided_signature),
                    "body_length": len(sig.raw_body),
                },
                level=logging.DEBUG,
            )

        if sig.timestamp is None or not sig.provided_signature:
            return self._reject(ctx, "missing_headers")

        if not sig.shared_secret or not sig.shared_secret.strip():
            return self._reject(ctx, "secret_unset", level=logging.ERROR)

        if abs(int(self._clock()) - sig.timestamp) > self._window_seconds:
            return self._reject(ctx, "stale_timestamp")

        # Slack signs the header text as sent, not its integer value.
        signed_ts = sig.raw_timestamp if sig.raw_timestamp is not None else sig.timestamp
        expected = compute_signature(sig.shared_secret, signed_ts, sig.raw_body)
        if not hmac.compare_digest(
            expected.encode(), sig.provided_signature.encode(),
        ):
            detail: dict[str, object] = {}
            if ctx.debug:
                detail = {
                    "computed": _prefix(expected),
                    "received": _prefix(sig.provided_signature),
                }
            return self._reject(ctx, "signature_mismatch", detail=detail)

        return True

    @staticmethod
    def _reject(
        ctx: RequestContext,
        reason: str,
        detail: dict[str, object] | None = None,
        level: int = logging.WARNING,
    ) -> bool:
        ctx.log_event(
            "signature_rejected",
            status=EventStatus.REJECTED,
            detail={"reason": reason, **(detail or {})},
            level=level,
        )
        return False


def _prefix(value: str | None) -> str | None:
    if value is None:
        return None
    return f"{value[:_DEBUG_PREFIX_LEN]}..."
