"""Outbound calls to the Slack Web API and the Notion API.

Every call runs through RetryingClient under its own label, with TLS
verification and bearer-token auth. DeliveryError is never swallowed here.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from src.audit.context import RequestContext
from src.config import NOTION_API_BASE, SLACK_API_BASE
from src.models import CorrelationMetadata, EventStatus
from src.webhook.models import (
    TASK_NAME_ACTION_ID,
    TASK_NAME_BLOCK_ID,
    TASK_NAME_CALLBACK_ID,
)
from src.webhook.retry import AttemptResult, RetryingClient, send

NOTION_VERSION = "2022-06-28"
RECORD_STATUS = "Incoming"
ERROR_PREVIEW_BYTES = 1500
_TIMEOUT_SECONDS = 10.0

PERMALINK_LABEL = "slack.chat.getPermalink"
VIEWS_OPEN_LABEL = "slack.views.open"
CREATE_PAGE_LABEL = "notion.pages.create"


class RemoteLookupError(LookupError):
    """The remote call went through but the expected field was not in the reply."""


class RemoteGateway:
    """Slack and Notion operations used by the interaction router."""

    def __init__(
        self,
        retrying: RetryingClient,
        slack_bot_token: str,
        notion_token: str,
        notion_database_id: str,
        slack_api_base: str = SLACK_API_BASE,
        notion_api_base: str = NOTION_API_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._retrying = retrying
        self._slack_bot_token = slack_bot_token
        self._notion_token = notion_token
        self._notion_database_id = notion_database_id
        self._slack_api_base = slack_api_base.rstrip("/")
        self._notion_api_base = notion_api_base.rstrip("/")
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            verify=True, timeout=_TIMEOUT_SECONDS, transport=self._transport,
        )

    async def _call(
        self,
        label: str,
        method: str,
        url: str,
        ctx: RequestContext,
        **kwargs: Any,
    ) -> httpx.Response:
        async with self._client() as client:

            async def operation() -> AttemptResult:
                return await send(client, method, url, **kwargs)

            return await self._retrying.execute(label, operation, ctx)

    async def fetch_permalink(
        self, channel_id: str, message_ts: str, ctx: RequestContext,
    ) -> str:
        resp = await self._call(
            PERMALINK_LABEL,
            "GET",
            f"{self._slack_api_base}/chat.getPermalink",
            ctx,
            params={"channel": channel_id, "message_ts": message_ts},
            headers={"Authorization": f"Bearer {self._slack_bot_token}"},
        )
        ctx.log_event(
            "permalink_response", detail={"status_code": resp.status_code},
        )

        try:
            permalink = resp.json().get("permalink")
        except (ValueError, AttributeError) as exc:
            raise RemoteLookupError(
                f"{PERMALINK_LABEL} returned an unparseable body",
            ) from exc
        if not isinstance(permalink, str) or not permalink:
            raise RemoteLookupError(f"{PERMALINK_LABEL} response has no permalink")
        return permalink

    async def open_interactive_form(
        self,
        trigger_id: str,
        message_ts: str,
        channel_id: str,
        message_text: str,
        permalink: str,
        ctx: RequestContext,
    ) -> httpx.Response:
        metadata = CorrelationMetadata(permalink=permalink, message_text=message_text)
        payload = {
            "trigger_id": trigger_id,
            "view": build_task_modal(metadata),
        }
        resp = await self._call(
            VIEWS_OPEN_LABEL,
            "POST",
            f"{self._slack_api_base}/views.open",
            ctx,
            json=payload,
            headers={"Authorization": f"Bearer {self._slack_bot_token}"},
        )

        try:
            ok = resp.json().get("ok")
        except (ValueError, AttributeError):
            ok = None
        ctx.log_event(
            "views_open_response",
            status=EventStatus.OK if ok else EventStatus.FAILURE,
            detail={
                "status_code": resp.status_code,
                "ok": ok,
                "channel_id": channel_id,
                "message_ts": message_ts,
            },
            level=logging.INFO if ok else logging.WARNING,
        )
        return resp

    async def create_record(
        self,
        task_name: str,
        permalink: str,
        message_text: str,
        ctx: RequestContext,
    ) -> httpx.Response:
        payload = build_page_payload(
            self._notion_database_id, task_name, permalink, message_text,
        )
        resp = await self._call(
            CREATE_PAGE_LABEL,
            "POST",
            f"{self._notion_api_base}/pages",
            ctx,
            json=payload,
            headers={
                "Authorization": f"Bearer {self._notion_token}",
                "Notion-Version": NOTION_VERSION,
            },
        )

        if resp.is_success:
            ctx.log_event(
                "notion_page_created",
                status=EventStatus.OK,
                detail={"status_code": resp.status_code},
            )
        else:
            preview = resp.content[:ERROR_PREVIEW_BYTES].decode(errors="replace")
            ctx.log_event(
                "notion_page_failed",
                status=EventStatus.FAILURE,
                detail={"status_code": resp.status_code, "body_preview": preview},
                level=logging.ERROR,
            )
        return resp


def build_task_modal(metadata: CorrelationMetadata) -> dict[str, Any]:
    """Modal asking for a task name; metadata rides along in private_metadata."""
    return {
        "type": "modal",
        "callback_id": TASK_NAME_CALLBACK_ID,
        "title": {"type": "plain_text", "text": "Add to Notion"},
        "submit": {"type": "plain_text", "text": "Save"},
        "close": {"type": "plain_text", "text": "Cancel"},
        "private_metadata": metadata.dumps(),
        "blocks": [
            {
                "type": "input",
                "block_id": TASK_NAME_BLOCK_ID,
                "label": {"type": "plain_text", "text": "Task Name"},
                "element": {
                    "type": "plain_text_input",
                    "action_id": TASK_NAME_ACTION_ID,
                    "placeholder": {
                        "type": "plain_text",
                        "text": "What do you need to do?",
                    },
                },
            },
        ],
    }


def build_page_payload(
    database_id: str, task_name: str, permalink: str, message_text: str,
) -> dict[str, Any]:
    return {
        "parent": {"database_id": database_id},
        "properties": {
            "Task Name": {"title": [{"text": {"content": task_name}}]},
            "Source": {"url": permalink},
            "Status": {"status": {"name": RECORD_STATUS}},
        },
        "children": [
            {
                "object": "block",
                "type": "paragraph",
                "paragraph": {
                    "rich_text": [{"type": "text", "text": {"content": message_text}}],
                },
            },
        ],
    }
