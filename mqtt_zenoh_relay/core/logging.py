"""Central logging configuration helpers for the relay."""

from __future__ import annotations

import sys
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TextIO

from loguru import logger

DEFAULT_LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line} - {message}"
)
PACKAGE_SCOPE = "mqtt_zenoh_relay"


@dataclass(frozen=True, slots=True)
class LoggingHandle:
    """Sinks installed by ``configure_logging``; ``close`` removes them."""

    handler_ids: tuple[int, ...]

    def close(self) -> None:
        for handler_id in self.handler_ids:
            try:
                logger.remove(handler_id)
            except ValueError:
                # Already removed elsewhere.
                pass

    def __enter__(self) -> LoggingHandle:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def configure_logging(
    level: str,
    *,
    debug_scopes: Iterable[str] = (),
    colorize: bool = False,
    serialize: bool = False,
    sink: TextIO | None = None,
) -> LoggingHandle:
    """Configure loguru with module-based debug filtering.

    Args:
        level: Minimum level for the main sink.
        debug_scopes: Module prefixes (``core.relay_loops`` or the full
            ``mqtt_zenoh_relay.core.relay_loops``) whose DEBUG records are
            emitted even when ``level`` is higher.
        colorize: Colorize the text format.
        serialize: Emit one JSON object per record instead of text.
        sink: Stream to write to, stderr by default.
    """
    logger.remove()
    stream = sink if sink is not None else sys.stderr

    handler_ids: list[int] = [
        logger.add(
            stream,
            level=level,
            format=DEFAULT_LOG_FORMAT,
            colorize=colorize,
            serialize=serialize,
        )
    ]

    level_upper = level.upper()
    scopes = tuple(scope.strip() for scope in debug_scopes if scope.strip())
    if scopes and level_upper != "DEBUG":

        def _debug_filter(record: object) -> bool:
            if not isinstance(record, Mapping):
                return False
            level = record.get("level")
            if getattr(level, "name", None) != "DEBUG":
                return False
            record_name = record.get("name", "")

            for scope in scopes:
                if record_name.startswith(scope):
                    return True
                if scope.startswith(f"{PACKAGE_SCOPE}."):
                    continue
                if record_name.startswith(f"{PACKAGE_SCOPE}.{scope}"):
                    return True
            return False

        handler_ids.append(
            logger.add(
                stream,
                level="DEBUG",
                format=DEFAULT_LOG_FORMAT,
                colorize=colorize,
                serialize=serialize,
                filter=_debug_filter,
            )
        )

    return LoggingHandle(tuple(handler_ids))
