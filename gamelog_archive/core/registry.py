from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from gamelog_archive.core.events import (
    GameEvent,
    MapLoad,
    PlayerChangeRole,
    PlayerConnect,
    PlayerDisconnect,
    PlayerEnterGame,
    PlayerKill,
)
from gamelog_archive.core.player import PlayerRoster
from gamelog_archive.core.types import LOG_TIMESTAMP_FORMAT, EventKindName
from gamelog_archive.errors import MalformedReferenceError, UnknownEventKindError

logger = logging.getLogger("gamelog_archive.parser")

TIMESTAMP_PREFIX = re.compile(
    r"^L (?P<timestamp>\d{2}/\d{2}/\d{4} - \d{2}:\d{2}:\d{2}): "
)

# Match order. MapLoad first so a new game is opened before anything else.
BUILTIN_EVENT_TYPES: tuple[type[GameEvent], ...] = (
    MapLoad,
    PlayerConnect,
    PlayerEnterGame,
    PlayerKill,
    PlayerChangeRole,
    PlayerDisconnect,
)


def split_log_line(line: str) -> tuple[datetime | None, str]:
    """Split ``L 10/13/2013 - 21:24:25: message`` into timestamp and message."""
    line = line.rstrip("\r\n")
    match = TIMESTAMP_PREFIX.match(line)
    if match is None:
        return None, line
    message = line[match.end() :]
    try:
        timestamp = datetime.strptime(match.group("timestamp"), LOG_TIMESTAMP_FORMAT)
    except ValueError:
        logger.debug("Invalid log timestamp %r", match.group("timestamp"))
        return None, message
    return timestamp, message


@dataclass(frozen=True, slots=True)
class EventKind:
    """Links an event kind to its storage unit and reconstruction rule."""

    name: EventKindName
    table: str
    event_type: type[GameEvent]

    @classmethod
    def of(cls, event_type: type[GameEvent]) -> EventKind:
        return cls(name=event_type.name, table=event_type.table, event_type=event_type)

    def reconstruct(self, record: Mapping[str, Any]) -> GameEvent:
        return self.event_type.from_record(record)


@dataclass(slots=True)
class LineContext:
    """Game-wide data available while one line is parsed."""

    game_id: str
    server: str
    line_number: int
    roster: PlayerRoster
    timestamp: datetime | None = None


class EventRegistry:
    def __init__(self, kinds: Iterable[type[GameEvent] | EventKind] = ()) -> None:
        self._kinds: list[EventKind] = []
        self._by_name: dict[str, EventKind] = {}
        self._by_table: dict[str, EventKind] = {}
        for kind in kinds:
            _ = self.register(kind)

    def register(self, kind: type[GameEvent] | EventKind) -> EventKind:
        """Add a kind. Kinds are tried in registration order."""
        if not isinstance(kind, EventKind):
            kind = EventKind.of(kind)
        if kind.name in self._by_name:
            raise ValueError(f"Event kind '{kind.name}' is already registered")
        if kind.table in self._by_table:
            raise ValueError(
                f"Storage unit '{kind.table}' is already used by "
                f"'{self._by_table[kind.table].name}'"
            )
        self._kinds.append(kind)
        self._by_name[kind.name] = kind
        self._by_table[kind.table] = kind
        return kind

    def parse_line(self, raw_line: str, context: LineContext) -> GameEvent | None:
        """Build the event for ``raw_line``, or None if no kind models it."""
        timestamp, message = split_log_line(raw_line)
        timestamp = timestamp or context.timestamp
        if timestamp is None:
            logger.debug("Line %d has no timestamp, skipping", context.line_number)
            return None

        for kind in self._kinds:
            match = kind.event_type.pattern.search(message)
            if match is None:
                continue

            try:
                values = kind.event_type.fields_from_match(
                    match, context.roster, timestamp
                )
            except MalformedReferenceError as e:
                logger.warning(
                    "Dropping %s on line %d: %s", kind.name, context.line_number, e
                )
                return None

            event = kind.event_type(
                game_id=context.game_id,
                server=context.server,
                line_number=context.line_number,
                timestamp=timestamp,
                **values,
            )
            event.apply(context.roster)
            return replace(event, state=context.roster.snapshot(timestamp))

        return None

    def kind_for_name(self, name: str) -> EventKind:
        try:
            return self._by_name[name]
        except KeyError:
            raise UnknownEventKindError(f"Unknown event kind '{name}'") from None

    def kind_for_table(self, table: str) -> EventKind:
        try:
            return self._by_table[table]
        except KeyError:
            raise UnknownEventKindError(
                f"Storage unit '{table}' does not map to a known event kind"
            ) from None

    def kind_for_event(self, event: GameEvent) -> EventKind:
        kind = self.kind_for_name(event.name)
        if not isinstance(event, kind.event_type):
            raise UnknownEventKindError(
                f"{type(event).__name__} is not registered as '{event.name}'"
            )
        return kind

    @property
    def kinds(self) -> tuple[EventKind, ...]:
        return tuple(self._kinds)

    @property
    def tables(self) -> tuple[str, ...]:
        return tuple(kind.table for kind in self._kinds)

    def __iter__(self) -> Iterator[EventKind]:
        return iter(self._kinds)

    def __len__(self) -> int:
        return len(self._kinds)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name


def default_registry(names: Iterable[str] | None = None) -> EventRegistry:
    """Registry of the built-in kinds, optionally restricted to ``names``."""
    if names is None:
        return EventRegistry(BUILTIN_EVENT_TYPES)

    wanted = set(names)
    unknown = wanted - {t.name for t in BUILTIN_EVENT_TYPES}
    if unknown:
        raise UnknownEventKindError(f"Unknown event kinds: {sorted(unknown)}")
    return EventRegistry(t for t in BUILTIN_EVENT_TYPES if t.name in wanted)
