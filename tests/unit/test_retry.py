"""Tests for the retrying outbound client."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.audit.context import RequestContext
from src.models import AttemptOutcome
from src.webhook.retry import (
    AttemptResult,
    DeliveryError,
    FatalError,
    Ok,
    RetryableError,
    RetryingClient,
    classify_response,
    send,
)

LABEL = "test.call"


def _scripted(results: list[AttemptResult]) -> AsyncMock:
    return AsyncMock(side_effect=results)


def _ok(status: int = 200) -> Ok:
    return Ok(httpx.Response(status))


def _server_error(status: int = 503) -> RetryableError:
    return RetryableError(reason=f"server error {status}", response=httpx.Response(status))


class TestRetryPolicy:
    @pytest.mark.asyncio
    async def test_first_attempt_success(self, ctx: RequestContext) -> None:
        client = RetryingClient(max_retries=3, base_delay=0.5)
        op = _scripted([_ok()])

        with patch("src.webhook.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            resp = await client.execute(LABEL, op, ctx)

        assert resp.status_code == 200
        assert op.await_count == 1
        mock_sleep.assert_not_called()
        assert [a.attempt_number for a in ctx.attempts] == [1]
        assert ctx.attempts[0].outcome == AttemptOutcome.SUCCESS

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failures", [1, 2, 3])
    async def test_succeeds_after_k_retryable_failures(
        self, ctx: RequestContext, failures: int,
    ) -> None:
        client = RetryingClient(max_retries=3, base_delay=0.5)
        op = _scripted([_server_error()] * failures + [_ok()])

        with patch("src.webhook.retry.asyncio.sleep", new_callable=AsyncMock):
            resp = await client.execute(LABEL, op, ctx)

        assert resp.status_code == 200
        assert len(ctx.attempts) == failures + 1
        assert ctx.attempts[-1].outcome == AttemptOutcome.SUCCESS
        assert all(
            a.outcome == AttemptOutcome.RETRYABLE_ERROR for a in ctx.attempts[:-1]
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_retries", [0, 1, 3])
    async def test_raises_after_exhausting_retries(
        self, ctx: RequestContext, max_retries: int,
    ) -> None:
        client = RetryingClient(max_retries=max_retries, base_delay=0.5)
        op = _scripted([_server_error()] * (max_retries + 2))

        with patch("src.webhook.retry.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(DeliveryError) as exc_info:
                await client.execute(LABEL, op, ctx)

        assert exc_info.value.attempts == max_retries + 1
        assert exc_info.value.label == LABEL
        assert exc_info.value.status_code == 503
        assert len(ctx.attempts) == max_retries + 1
        assert op.await_count == max_retries + 1

    @pytest.mark.asyncio
    async def test_client_error_returned_without_retry(self, ctx: RequestContext) -> None:
        client = RetryingClient(max_retries=3, base_delay=0.5)
        op = AsyncMock(return_value=classify_response(httpx.Response(404)))

        with patch("src.webhook.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            resp = await client.execute(LABEL, op, ctx)

        assert resp.status_code == 404
        assert op.await_count == 1
        assert len(ctx.attempts) == 1
        mock_sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_fatal_error_not_retried(self, ctx: RequestContext) -> None:
        client = RetryingClient(max_retries=3, base_delay=0.5)
        op = _scripted([FatalError(reason="InvalidURL")])

        with pytest.raises(DeliveryError):
            await client.execute(LABEL, op, ctx)

        assert len(ctx.attempts) == 1
        assert ctx.attempts[0].outcome == AttemptOutcome.FATAL_ERROR

    @pytest.mark.asyncio
    async def test_linear_backoff_with_jitter(self, ctx: RequestContext) -> None:
        client = RetryingClient(max_retries=3, base_delay=0.5)
        op = _scripted([_server_error()] * 4)
        sleep_times: list[float] = []

        async def capture_sleep(t: float) -> None:
            sleep_times.append(t)

        with patch("src.webhook.retry.asyncio.sleep", side_effect=capture_sleep):
            with pytest.raises(DeliveryError):
                await client.execute(LABEL, op, ctx)

        assert len(sleep_times) == 3
        for attempt, delay in enumerate(sleep_times, start=1):
            assert 0.5 * attempt <= delay <= 0.5 * attempt + 0.25

    @pytest.mark.asyncio
    async def test_per_call_overrides(self, ctx: RequestContext) -> None:
        client = RetryingClient(max_retries=5, base_delay=10.0)
        op = _scripted([_server_error()] * 2)

        with patch("src.webhook.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(DeliveryError):
                await client.execute(LABEL, op, ctx, max_retries=1, base_delay=0.0)

        assert op.await_count == 2
        assert mock_sleep.await_args.args[0] <= 0.25

    @pytest.mark.asyncio
    async def test_attempts_record_latency_and_label(self, ctx: RequestContext) -> None:
        client = RetryingClient(max_retries=1, base_delay=0.0)
        op = _scripted([_server_error(500), _ok(201)])

        with patch("src.webhook.retry.asyncio.sleep", new_callable=AsyncMock):
            await client.execute(LABEL, op, ctx)

        assert [a.status_code for a in ctx.attempts] == [500, 201]
        assert all(a.label == LABEL for a in ctx.attempts)
        assert all(a.max_attempts == 2 for a in ctx.attempts)
        assert all(a.latency_ms >= 0 for a in ctx.attempts)


class TestClassification:
    @pytest.mark.parametrize("status", [500, 502, 503, 504])
    def test_server_errors_are_retryable(self, status: int) -> None:
        assert isinstance(classify_response(httpx.Response(status)), RetryableError)

    @pytest.mark.parametrize("status", [200, 201, 204, 301, 400, 401, 404, 429])
    def test_other_statuses_are_returned(self, status: int) -> None:
        assert isinstance(classify_response(httpx.Response(status)), Ok)

    @pytest.mark.asyncio
    async def test_connect_error_is_retryable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await send(client, "GET", "https://example.test/x")

        assert isinstance(result, RetryableError)
        assert isinstance(result.error, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await send(client, "GET", "https://example.test/x")

        assert isinstance(result, RetryableError)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [httpx.DecodingError("incorrect header check"), httpx.TooManyRedirects("loop")],
    )
    async def test_undecodable_or_redirect_loop_is_retryable(
        self, error: httpx.RequestError,
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise error

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await send(client, "GET", "https://example.test/x")

        assert isinstance(result, RetryableError)
        assert result.error is error

    @pytest.mark.asyncio
    async def test_unsupported_protocol_is_fatal(self) -> None:
        async with httpx.AsyncClient() as client:
            result = await send(client, "GET", "ftp://example.test/x")

        assert isinstance(result, FatalError)

    @pytest.mark.asyncio
    async def test_response_is_classified(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await send(client, "GET", "https://example.test/x")

        assert isinstance(result, RetryableError)
        assert result.response is not None
        assert result.response.status_code == 502

    @pytest.mark.asyncio
    async def test_undecodable_body_ends_in_delivery_error(
        self, ctx: RequestContext,
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.DecodingError("incorrect header check", request=request)

        retrying = RetryingClient(max_retries=1, base_delay=0.0)
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with patch("src.webhook.retry.asyncio.sleep", new_callable=AsyncMock):
                with pytest.raises(DeliveryError) as exc_info:
                    await retrying.execute(
                        LABEL, lambda: send(client, "GET", "https://example.test/x"), ctx,
                    )

        assert exc_info.value.attempts == 2
        assert [a.outcome for a in ctx.attempts] == [AttemptOutcome.RETRYABLE_ERROR] * 2
