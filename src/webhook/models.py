"""Data models for the Slack interaction pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter

TASK_NAME_CALLBACK_ID = "task_name_modal"
TASK_NAME_BLOCK_ID = "task_name_block"
TASK_NAME_ACTION_ID = "task_name_input"


@dataclass(frozen=True)
class SignatureContext:
    """Inputs to signature verification; raw_body is the literal wire bytes."""

    timestamp: int | None
    provided_signature: str | None
    raw_body: bytes
    shared_secret: str = field(repr=False)
    raw_timestamp: str | None = None


@dataclass
class InteractionResponse:
    """Router response to return to Slack."""

    status_code: int
    body: dict[str, Any] | str = ""


# --- Inbound callbacks ---


class ChannelRef(BaseModel):
    id: str


class MessageRef(BaseModel):
    ts: str
    text: str | None = None


class MessageAction(BaseModel):
    """A message shortcut was triggered on a message."""

    type: Literal["message_action"]
    trigger_id: str
    channel: ChannelRef
    message: MessageRef

    @property
    def channel_id(self) -> str:
        return self.channel.id

    @property
    def message_ts(self) -> str:
        return self.message.ts

    @property
    def message_text(self) -> str:
        return self.message.text or ""


class ViewState(BaseModel):
    values: dict[str, dict[str, dict[str, Any]]] = Field(default_factory=dict)


class SubmittedView(BaseModel):
    callback_id: str = ""
    private_metadata: str = ""
    state: ViewState = Field(default_factory=ViewState)


class ViewSubmission(BaseModel):
    """A modal opened by this app was submitted."""

    type: Literal["view_submission"]
    view: SubmittedView

    @property
    def callback_id(self) -> str:
        return self.view.callback_id

    def submitted_value(self, block_id: str, action_id: str) -> str | None:
        element = self.view.state.values.get(block_id, {}).get(action_id, {})
        value = element.get("value")
        return value if isinstance(value, str) else None


class UnsupportedCallback(BaseModel):
    """Any interaction type this app does not handle."""

    type: str


KNOWN_CALLBACK_TYPES = frozenset({"message_action", "view_submission"})

InboundCallback = MessageAction | ViewSubmission | UnsupportedCallback

CALLBACK_ADAPTER: TypeAdapter[MessageAction | ViewSubmission] = TypeAdapter(
    Annotated[MessageAction | ViewSubmission, Field(discriminator="type")],
)
