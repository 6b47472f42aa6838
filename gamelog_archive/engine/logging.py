from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, get_args, override

from rich.logging import RichHandler
from rich.markup import escape

from gamelog_archive.core.types import EventKindName

if TYPE_CHECKING:
    from gamelog_archive.core.state import LogContext
    from gamelog_archive.engine.session import GameSessionBuilder

EVENT_KIND_NAMES = set(get_args(EventKindName))

# Precompiled regex patterns for highlighting
EVENT_KIND_PATTERN = re.compile(
    rf"\b({'|'.join(map(re.escape, sorted(EVENT_KIND_NAMES)))})\b"
)
TEAM_PATTERN = re.compile(r"<(Red|Blue)>")


# Simple color theme for Rich
COLOR = {
    "event": "bold blue",
    "Red": "bold red",
    "Blue": "bold cyan",
    "removed": "bold magenta",
    "warning": "bold red",
    "prefix": "dim",
}


class ContextFilter(logging.Filter):
    """Inject the game and line being parsed into every log record."""

    def __init__(self, builder: GameSessionBuilder, name: str = "") -> None:
        super().__init__(name)
        self.builder: GameSessionBuilder = builder

    @override
    def filter(self, record: logging.LogRecord) -> bool:
        logctx: LogContext = self.builder.log_context
        record.game_id = logctx.game_id
        record.short_game_id = logctx.short_game_id
        record.server = logctx.server
        record.line_number = logctx.line_number
        return True


class RichMarkupFormatter(logging.Formatter):
    @override
    def format(self, record: logging.LogRecord) -> str:
        short_game_id = getattr(record, "short_game_id", "-")
        line_number = getattr(record, "line_number", 0)
        prefix = f"{short_game_id}:{line_number}"

        # Nicknames often carry clan tags like [TAG], which rich would read as markup
        styled = escape(record.getMessage())

        styled = EVENT_KIND_PATTERN.sub(
            rf"[{COLOR['event']}]\1[/{COLOR['event']}]", styled
        )
        styled = TEAM_PATTERN.sub(
            lambda m: f"<[{COLOR[m.group(1)]}]{m.group(1)}[/{COLOR[m.group(1)]}]>",
            styled,
        )
        styled = re.sub(
            r"\bRemoving\b", f"[{COLOR['removed']}]Removing[/{COLOR['removed']}]", styled
        )

        if record.levelno >= logging.WARNING:
            styled = f"[{COLOR['warning']}]{styled}[/{COLOR['warning']}]"

        return f"[{COLOR['prefix']}]{prefix}[/{COLOR['prefix']}]  {styled}"


def configure_logging(
    level: int | str = logging.INFO,
    builder: GameSessionBuilder | None = None,
) -> None:
    logger = logging.getLogger()
    logger.setLevel(level)
    handler = RichHandler(markup=True, show_path=False, show_time=False)
    handler.setFormatter(RichMarkupFormatter())
    if builder is not None:
        handler.addFilter(ContextFilter(builder))
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.propagate = False
