"""Interaction router: verify, decode, and dispatch Slack interaction callbacks.

message_action   → fetch permalink → open task-name modal → 200 ""
view_submission  → create Notion page → 200 clear | 200 inline errors
anything else    → 200 "" (explicit no-op)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from urllib.parse import parse_qs

from pydantic import ValidationError

from src.audit.context import RequestContext
from src.models import CorrelationMetadata, EventStatus
from src.webhook.gateway import RemoteGateway, RemoteLookupError
from src.webhook.models import (
    CALLBACK_ADAPTER,
    KNOWN_CALLBACK_TYPES,
    TASK_NAME_ACTION_ID,
    TASK_NAME_BLOCK_ID,
    TASK_NAME_CALLBACK_ID,
    InboundCallback,
    InteractionResponse,
    MessageAction,
    UnsupportedCallback,
    ViewSubmission,
)
from src.webhook.retry import DeliveryError
from src.webhook.signature import SignatureVerifier

DEFAULT_TASK_NAME = "Untitled task"
SAVE_FAILED_MESSAGE = "Couldn't save this task to Notion. Please try again."


class AuthFailure(Exception):
    """Signature missing, stale, mismatched, or the secret is not configured."""


class MalformedRequest(Exception):
    """The payload form field is missing or is not a usable callback."""


def extract_payload(raw_body: bytes) -> str | None:
    """Read the ``payload`` field from the literal form-encoded body."""
    try:
        fields = parse_qs(raw_body.decode("utf-8"), keep_blank_values=True)
    except UnicodeDecodeError:
        return None
    values = fields.get("payload")
    return values[0] if values else None


def decode_callback(raw_payload: str | None) -> InboundCallback:
    if raw_payload is None:
        raise MalformedRequest("missing payload")
    try:
        data = json.loads(raw_payload)
    except json.JSONDecodeError as exc:
        raise MalformedRequest("payload is not valid JSON") from exc
    if not isinstance(data, dict):
        raise MalformedRequest("payload is not a JSON object")

    callback_type = data.get("type")
    if callback_type is not None and not isinstance(callback_type, str):
        raise MalformedRequest("payload type is not a string")
    if callback_type not in KNOWN_CALLBACK_TYPES:
        return UnsupportedCallback(type=str(callback_type))
    try:
        return CALLBACK_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise MalformedRequest(f"invalid {callback_type} payload") from exc


class InteractionRouter:
    """Routes one inbound callback to exactly one response."""

    def __init__(self, verifier: SignatureVerifier, gateway: RemoteGateway) -> None:
        self._verifier = verifier
        self._gateway = gateway

    async def dispatch(
        self,
        headers: Mapping[str, str],
        raw_body: bytes,
        ctx: RequestContext,
    ) -> InteractionResponse:
        try:
            self._authenticate(headers, raw_body, ctx)
            callback = decode_callback(extract_payload(raw_body))
            return await self._route(callback, ctx)
        except AuthFailure:
            return InteractionResponse(status_code=403, body="Unauthorized")
        except MalformedRequest as exc:
            ctx.log_event(
                "malformed_request",
                status=EventStatus.REJECTED,
                detail={"reason": str(exc)},
                level=logging.WARNING,
            )
            return InteractionResponse(status_code=400, body="Bad Request")

    def _authenticate(
        self, headers: Mapping[str, str], raw_body: bytes, ctx: RequestContext,
    ) -> None:
        sig = self._verifier.build_context(headers, raw_body)
        if not self._verifier.verify(sig, ctx):
            raise AuthFailure()

    async def _route(
        self, callback: InboundCallback, ctx: RequestContext,
    ) -> InteractionResponse:
        if isinstance(callback, MessageAction):
            return await self._handle_message_action(callback, ctx)
        if isinstance(callback, ViewSubmission):
            if callback.callback_id == TASK_NAME_CALLBACK_ID:
                return await self._handle_task_submission(callback, ctx)
            ctx.log_event(
                "view_submission_ignored",
                status=EventStatus.IGNORED,
                detail={"callback_id": callback.callback_id},
            )
            return InteractionResponse(status_code=200)
        ctx.log_event(
            "interaction_ignored",
            status=EventStatus.IGNORED,
            detail={"type": callback.type},
        )
        return InteractionResponse(status_code=200)

    async def _handle_message_action(
        self, action: MessageAction, ctx: RequestContext,
    ) -> InteractionResponse:
        ctx.log_event(
            "message_action_received",
            detail={"channel_id": action.channel_id, "message_ts": action.message_ts},
        )
        try:
            permalink = await self._gateway.fetch_permalink(
                action.channel_id, action.message_ts, ctx,
            )
            await self._gateway.open_interactive_form(
                action.trigger_id,
                action.message_ts,
                action.channel_id,
                action.message_text,
                permalink,
                ctx,
            )
        except (DeliveryError, RemoteLookupError) as exc:
            # Slack gets a plain ack; the modal simply does not open.
            ctx.log_event(
                "message_action_failed",
                status=EventStatus.FAILURE,
                detail={"error": type(exc).__name__, "reason": str(exc)},
                level=logging.ERROR,
            )
        return InteractionResponse(status_code=200)

    async def _handle_task_submission(
        self, submission: ViewSubmission, ctx: RequestContext,
    ) -> InteractionResponse:
        try:
            metadata = CorrelationMetadata.loads(submission.view.private_metadata)
        except ValidationError as exc:
            raise MalformedRequest("private_metadata is not valid") from exc

        submitted = submission.submitted_value(TASK_NAME_BLOCK_ID, TASK_NAME_ACTION_ID)
        task_name = (submitted or "").strip() or DEFAULT_TASK_NAME
        ctx.log_event(
            "view_submission_received",
            detail={"task_name_present": bool((submitted or "").strip())},
        )

        try:
            resp = await self._gateway.create_record(
                task_name, metadata.permalink, metadata.message_text, ctx,
            )
        except DeliveryError as exc:
            ctx.log_event(
                "record_delivery_failed",
                status=EventStatus.FAILURE,
                detail={"reason": str(exc), "attempts": exc.attempts},
                level=logging.ERROR,
            )
            return _inline_error()

        if not resp.is_success:
            return _inline_error()
        return InteractionResponse(status_code=200, body={"response_action": "clear"})


def _inline_error() -> InteractionResponse:
    # Slack only re-renders the modal with field errors on a 200.
    return InteractionResponse(
        status_code=200,
        body={
            "response_action": "errors",
            "errors": {TASK_NAME_BLOCK_ID: SAVE_FAILED_MESSAGE},
        },
    )
