"""Bounded retries with jittered linear backoff for outbound API calls.

Operations return an explicit AttemptResult instead of raising to signal a
retry. Server errors (5xx) and any httpx request failure, including
undecodable bodies, are retryable; client errors (4xx) are handed
back to the caller untouched on the first attempt.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx

from src.audit.context import RequestContext
from src.models import AttemptOutcome, EventStatus, OutboundAttempt

_DEFAULT_MAX_RETRIES = 2
_DEFAULT_BASE_DELAY_SECONDS = 0.5
_JITTER_SECONDS = 0.25


@dataclass(frozen=True)
class Ok:
    response: httpx.Response


@dataclass(frozen=True)
class RetryableError:
    reason: str
    response: httpx.Response | None = None
    error: Exception | None = None


@dataclass(frozen=True)
class FatalError:
    reason: str
    error: Exception | None = None


AttemptResult = Ok | RetryableError | FatalError
Operation = Callable[[], Awaitable[AttemptResult]]


class DeliveryError(Exception):
    """Raised when an outbound call failed for good."""

    def __init__(
        self,
        label: str,
        attempts: int,
        reason: str,
        status_code: int | None = None,
    ) -> None:
        self.label = label
        self.attempts = attempts
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"{label} failed after {attempts} attempt(s): {reason}")


def classify_response(response: httpx.Response) -> AttemptResult:
    if response.status_code >= 500:
        return RetryableError(
            reason=f"server error {response.status_code}", response=response,
        )
    return Ok(response)


async def send(
    client: httpx.AsyncClient, method: str, url: str, **kwargs: Any,
) -> AttemptResult:
    """Issue one HTTP request and classify the outcome."""
    try:
        response = await client.request(method, url, **kwargs)
    except (httpx.UnsupportedProtocol, httpx.InvalidURL) as exc:
        return FatalError(reason=type(exc).__name__, error=exc)
    except httpx.RequestError as exc:
        return RetryableError(reason=type(exc).__name__, error=exc)
    return classify_response(response)


class RetryingClient:
    """Runs an operation until it succeeds, fails fatally, or retries run out."""

    def __init__(
        self,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        base_delay: float = _DEFAULT_BASE_DELAY_SECONDS,
    ) -> None:
        self._max_retries = max_retries
        self._base_delay = base_delay

    async def execute(
        self,
        label: str,
        operation: Operation,
        ctx: RequestContext,
        max_retries: int | None = None,
        base_delay: float | None = None,
    ) -> httpx.Response:
        retries = self._max_retries if max_retries is None else max_retries
        delay_unit = self._base_delay if base_delay is None else base_delay
        max_attempts = retries + 1
        attempt = 0

        while True:
            attempt += 1
            started_at = datetime.now(UTC).isoformat()
            start = time.monotonic()
            result = await operation()
            latency_ms = (time.monotonic() - start) * 1000

            ctx.record_attempt(OutboundAttempt(
                label=label,
                attempt_number=attempt,
                max_attempts=max_attempts,
                started_at=started_at,
                outcome=_outcome_of(result),
                latency_ms=latency_ms,
                status_code=_status_of(result),
            ))

            if isinstance(result, Ok):
                return result.response

            if isinstance(result, FatalError):
                raise DeliveryError(label, attempt, result.reason) from result.error

            if attempt > retries:
                ctx.log_event(
                    "delivery_failed",
                    status=EventStatus.FAILURE,
                    detail={"label": label, "attempts": attempt, "reason": result.reason},
                    level=logging.ERROR,
                )
                raise DeliveryError(
                    label, attempt, result.reason, _status_of(result),
                ) from result.error

            delay = delay_unit * attempt + random.uniform(0, _JITTER_SECONDS)
            ctx.log_event(
                "retry_scheduled",
                detail={
                    "label": label,
                    "attempt": attempt,
                    "delay_seconds": round(delay, 3),
                    "reason": result.reason,
                },
                level=logging.WARNING,
            )
            await asyncio.sleep(delay)


def _outcome_of(result: AttemptResult) -> AttemptOutcome:
    if isinstance(result, Ok):
        return AttemptOutcome.SUCCESS
    if isinstance(result, RetryableError):
        return AttemptOutcome.RETRYABLE_ERROR
    return AttemptOutcome.FATAL_ERROR


def _status_of(result: AttemptResult) -> int | None:
    if isinstance(result, Ok):
        return result.response.status_code
    if isinstance(result, RetryableError) and result.response is not None:
        return result.response.status_code
    return None
