"""Event logger: structured JSON Lines events written through stdlib logging."""

from __future__ import annotations

import json
import logging

from src.models import LogEvent

_DEFAULT_LOGGER_NAME = "relay.events"


class EventLogger:
    """Serializes LogEvents to compact JSON lines on a logging.Logger.

    One instance is built at startup and handed to every component; nothing
    reaches for a module-level logger to emit request events.
    """

    def __init__(
        self,
        logger: logging.Logger | None = None,
        debug: bool = False,
    ) -> None:
        self._logger = logger or logging.getLogger(_DEFAULT_LOGGER_NAME)
        self.debug = debug

    def emit(self, event: LogEvent, level: int = logging.INFO) -> None:
        data = {k: v for k, v in event.model_dump(mode="json").items() if v is not None}
        line = json.dumps(data, separators=(",", ":"))
        self._logger.log(level, line)
