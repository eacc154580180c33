"""FastAPI application for the Slack interaction endpoint."""

from __future__ import annotations

import logging

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.middleware.trustedhost import TrustedHostMiddleware

from src.audit.context import RequestContext
from src.audit.logger import EventLogger
from src.config import RelayConfig
from src.webhook.gateway import RemoteGateway
from src.webhook.models import InteractionResponse
from src.webhook.retry import RetryingClient
from src.webhook.router import InteractionRouter
from src.webhook.signature import SignatureVerifier

ACTIONS_PATH = "/slack/actions"

logger = logging.getLogger(__name__)


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    return create_app(RelayConfig.from_env())


def create_app(
    config: RelayConfig,
    events: EventLogger | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Wire the verifier, gateway, and router from one read-only config."""
    events = events or EventLogger(debug=config.debug)
    verifier = SignatureVerifier(config.signing_secret)
    gateway = RemoteGateway(
        retrying=RetryingClient(
            max_retries=config.max_retries,
            base_delay=config.base_delay_seconds,
        ),
        slack_bot_token=config.slack_bot_token,
        notion_token=config.notion_token,
        notion_database_id=config.notion_database_id,
        slack_api_base=config.slack_api_base,
        notion_api_base=config.notion_api_base,
        transport=transport,
    )
    router = InteractionRouter(verifier, gateway)

    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post(ACTIONS_PATH)
    async def slack_actions(request: Request) -> Response:
        ctx = RequestContext(events)
        ctx.log_event(
            "request_received",
            detail={"method": request.method, "path": request.url.path},
        )
        # The signature covers the literal bytes, so the form is parsed from them too.
        raw_body = await request.body()
        result = await router.dispatch(request.headers, raw_body, ctx)
        return _to_response(result)

    hosts = permitted_hosts(config.allowed_hosts)
    logger.info("Host authorization permitted_hosts=%s", hosts)
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=hosts)

    return app


def permitted_hosts(allowed_hosts: tuple[str, ...]) -> list[str]:
    """Translate leading-dot domain entries into Starlette wildcard patterns."""
    return [f"*{h}" if h.startswith(".") else h for h in allowed_hosts]


def _to_response(result: InteractionResponse) -> Response:
    if isinstance(result.body, dict):
        return JSONResponse(result.body, status_code=result.status_code)
    return PlainTextResponse(result.body, status_code=result.status_code)
