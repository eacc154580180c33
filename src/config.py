"""Process configuration, read once at startup and injected into components."""

from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

# Starlette matches the Host header up to the first ":", so IPv6 literals
# such as [::1] cannot be listed.
DEFAULT_ALLOWED_HOSTS = (".up.railway.app", "localhost", "127.0.0.1")
SLACK_API_BASE = "https://slack.com/api"
NOTION_API_BASE = "https://api.notion.com/v1"


def _split_hosts(raw: str) -> tuple[str, ...]:
    hosts = tuple(h.strip() for h in raw.split(",") if h.strip())
    return hosts or DEFAULT_ALLOWED_HOSTS


class RelayConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    signing_secret: str = ""
    slack_bot_token: str = ""
    notion_token: str = ""
    notion_database_id: str = ""
    allowed_hosts: tuple[str, ...] = DEFAULT_ALLOWED_HOSTS
    port: int = Field(default=4567, ge=1, le=65535)
    debug: bool = False
    max_retries: int = Field(default=2, ge=0)
    base_delay_seconds: float = Field(default=0.5, ge=0)
    slack_api_base: str = SLACK_API_BASE
    notion_api_base: str = NOTION_API_BASE

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> RelayConfig:
        """Create RelayConfig from environment variables.

        Outside production a local .env file is loaded first; real environment
        variables take precedence over it.
        """
        env_name = os.environ.get("APP_ENV") or os.environ.get("RACK_ENV", "")
        if load_env_file and env_name != "production":
            load_dotenv(os.path.join(os.getcwd(), ".env"))

        return cls(
            signing_secret=os.environ.get("SLACK_SIGNING_SECRET", "").strip(),
            slack_bot_token=os.environ.get("SLACK_BOT_TOKEN", ""),
            notion_token=os.environ.get("NOTION_TOKEN", ""),
            notion_database_id=os.environ.get("NOTION_DATABASE_ID", ""),
            allowed_hosts=_split_hosts(os.environ.get("ALLOWED_HOSTS", "")),
            port=int(os.environ.get("PORT", "4567")),
            debug=os.environ.get("SLACK_DEBUG", "").strip() == "true",
            max_retries=int(os.environ.get("RELAY_MAX_RETRIES", "2")),
            base_delay_seconds=float(
                os.environ.get("RELAY_BASE_DELAY_SECONDS", "0.5"),
            ),
            slack_api_base=os.environ.get("SLACK_API_BASE", SLACK_API_BASE),
            notion_api_base=os.environ.get("NOTION_API_BASE", NOTION_API_BASE),
        )
