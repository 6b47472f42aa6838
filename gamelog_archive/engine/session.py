import hashlib
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from gamelog_archive.core.events import GameEvent, MapLoad
from gamelog_archive.core.player import PlayerRoster
from gamelog_archive.core.registry import (
    EventRegistry,
    LineContext,
    default_registry,
    split_log_line,
)
from gamelog_archive.core.state import LogContext

logger = logging.getLogger("gamelog_archive.session")

__all__ = [
    "GameSession",
    "GameSessionBuilder",
    "compute_game_id",
    "split_log_line",
]


def compute_game_id(lines: Iterable[str]) -> str:
    """Hash a capture's content.

    Identical captures share an id; a truncated capture of the same match
    does not.
    """
    digest = hashlib.sha1(usedforsecurity=False)
    for line in lines:
        digest.update(line.rstrip("\r\n").encode("utf-8"))
        digest.update(b"\n")
    return digest.hexdigest()


@dataclass(slots=True)
class GameSession:
    game_id: str
    server: str
    events: list[GameEvent] = field(default_factory=list)
    roster: PlayerRoster = field(default_factory=PlayerRoster)
    line_count: int = 0

    @property
    def map_loads(self) -> list[MapLoad]:
        return [e for e in self.events if isinstance(e, MapLoad)]

    @property
    def opening_event(self) -> MapLoad | None:
        """The first map load, which anchors this capture."""
        return next((e for e in self.events if isinstance(e, MapLoad)), None)

    def events_of[E: GameEvent](self, event_type: type[E]) -> list[E]:
        return [e for e in self.events if isinstance(e, event_type)]

    def __len__(self) -> int:
        return len(self.events)


class GameSessionBuilder:
    """Drives one log capture through the registry, line by line."""

    def __init__(
        self,
        registry: EventRegistry | None = None,
        server: str = "unknown",
        log_context: LogContext | None = None,
    ) -> None:
        self.registry: EventRegistry = (
            registry if registry is not None else default_registry()
        )
        self.server: str = server
        self.log_context: LogContext = log_context or LogContext()

    def build(
        self,
        lines: Iterable[str],
        start_time: datetime | None = None,
    ) -> GameSession:
        """Parse ``lines`` in order.

        ``start_time`` stands in for the timestamp of lines that carry none
        until the first timestamped line is seen.
        """
        lines = list(lines)
        session = GameSession(
            game_id=compute_game_id(lines),
            server=self.server,
            line_count=len(lines),
        )
        self.log_context.start_game(session.game_id, session.server)
        logger.debug("Parsing %d lines from %s", len(lines), session.server)

        last_timestamp = start_time
        for line_number, raw_line in enumerate(lines, start=1):
            self.log_context.line_number = line_number
            context = LineContext(
                game_id=session.game_id,
                server=session.server,
                line_number=line_number,
                roster=session.roster,
                timestamp=last_timestamp,
            )
            event = self.registry.parse_line(raw_line, context)
            if event is None:
                timestamp, _ = split_log_line(raw_line)
                last_timestamp = timestamp or last_timestamp
                continue

            last_timestamp = event.timestamp
            session.events.append(event)

        if session.opening_event is None:
            logger.warning("No map load found, this capture has no opening event")
        logger.info(
            "Parsed %d events and %d players from %d lines",
            len(session.events),
            len(session.roster),
            session.line_count,
        )
        return session
