"""Typed events, one per modeled log line.

Each event kind owns a line pattern with named groups. Groups listed in
``player_groups`` are resolved through the session's ``PlayerRoster``; the
rest are kept as strings. ``apply`` records the facts the event implies on
the players it references.
"""

import re
from abc import ABC
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, ClassVar, Self, override

from gamelog_archive.core.player import Player, PlayerRoster, parse_player_reference
from gamelog_archive.core.state import GameState
from gamelog_archive.core.types import EventKindName

# Fields every event carries, indexed in every storage unit.
SHARED_FIELDS: tuple[str, ...] = ("game_id", "server", "line_number", "timestamp")

# Derived on demand from the fact timelines, too large to persist per event.
DERIVED_FIELDS: frozenset[str] = frozenset({"state"})


@dataclass(frozen=True, kw_only=True)
class GameEvent(ABC):
    name: ClassVar[EventKindName]
    table: ClassVar[str]
    pattern: ClassVar[re.Pattern[str]]
    player_groups: ClassVar[tuple[str, ...]] = ()

    game_id: str
    server: str
    line_number: int
    timestamp: datetime
    state: GameState | None = field(default=None, compare=False, repr=False)

    @classmethod
    def fields_from_match(
        cls,
        match: re.Match[str],
        roster: PlayerRoster,
        timestamp: datetime,
    ) -> dict[str, Any]:
        """Map captured groups to kind-specific field values.

        Every player reference is parsed before any is resolved, so a
        malformed reference leaves the roster untouched.
        """
        values: dict[str, Any] = match.groupdict()
        references = {
            group: parse_player_reference(values[group]) for group in cls.player_groups
        }
        for group, reference in references.items():
            values[group] = roster.resolve(reference, timestamp)
        return values

    def apply(self, roster: PlayerRoster) -> None:
        """Record the facts implied by this event. Most kinds imply none."""
        _ = roster

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        """Names of the persisted fields, shared ones first."""
        return tuple(f.name for f in fields(cls) if f.name not in DERIVED_FIELDS)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Self:
        """Rebuild an event from a stored row, ignoring unknown columns."""
        names = set(cls.field_names())
        return cls(**{k: v for k, v in record.items() if k in names})

    def to_record(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.field_names()}

    def players(self) -> tuple[Player, ...]:
        return tuple(getattr(self, group) for group in self.player_groups)


def _mark_playing(roster: PlayerRoster, player: Player, timestamp: datetime) -> None:
    roster.set_fact(player, "connected", timestamp, True)
    roster.set_fact(player, "in_game", timestamp, True)


@dataclass(frozen=True, kw_only=True)
class MapLoad(GameEvent):
    """Opens a new game capture."""

    name: ClassVar[EventKindName] = "MapLoad"
    table: ClassVar[str] = "map_load"
    pattern: ClassVar[re.Pattern[str]] = re.compile(
        r'Loading map "(?P<map_name>[^"]+)"'
    )

    map_name: str


@dataclass(frozen=True, kw_only=True)
class PlayerConnect(GameEvent):
    name: ClassVar[EventKindName] = "PlayerConnect"
    table: ClassVar[str] = "player_connect"
    pattern: ClassVar[re.Pattern[str]] = re.compile(
        r'"(?P<player>.+)" connected, address "(?P<address>[^"]*)"'
    )
    player_groups: ClassVar[tuple[str, ...]] = ("player",)

    player: Player
    address: str

    @override
    def apply(self, roster: PlayerRoster) -> None:
        roster.set_fact(self.player, "connected", self.timestamp, True)
        roster.set_fact(self.player, "address", self.timestamp, self.address)


@dataclass(frozen=True, kw_only=True)
class PlayerEnterGame(GameEvent):
    """Always follows a ``PlayerConnect`` for the same player."""

    name: ClassVar[EventKindName] = "PlayerEnterGame"
    table: ClassVar[str] = "player_enter_game"
    pattern: ClassVar[re.Pattern[str]] = re.compile(
        r'"(?P<player>.+)" entered the game'
    )
    player_groups: ClassVar[tuple[str, ...]] = ("player",)

    player: Player

    @override
    def apply(self, roster: PlayerRoster) -> None:
        _mark_playing(roster, self.player, self.timestamp)


@dataclass(frozen=True, kw_only=True)
class PlayerKill(GameEvent):
    name: ClassVar[EventKindName] = "PlayerKill"
    table: ClassVar[str] = "player_kill"
    pattern: ClassVar[re.Pattern[str]] = re.compile(
        r'"(?P<attacker>.+)" killed "(?P<victim>.+)" with "(?P<weapon>[^"]+)"'
        r'(?: \(customkill "(?P<customkill>[^"]+)"\))?'
    )
    player_groups: ClassVar[tuple[str, ...]] = ("attacker", "victim")

    attacker: Player
    victim: Player
    weapon: str  # can be "world"
    customkill: str | None = None  # e.g. "backstab", "headshot"

    @override
    def apply(self, roster: PlayerRoster) -> None:
        for player in (self.attacker, self.victim):
            _mark_playing(roster, player, self.timestamp)


@dataclass(frozen=True, kw_only=True)
class PlayerChangeRole(GameEvent):
    name: ClassVar[EventKindName] = "PlayerChangeRole"
    table: ClassVar[str] = "player_change_role"
    pattern: ClassVar[re.Pattern[str]] = re.compile(
        r'"(?P<player>.+)" changed role to "(?P<role>[^"]+)"'
    )
    player_groups: ClassVar[tuple[str, ...]] = ("player",)

    player: Player
    role: str

    @override
    def apply(self, roster: PlayerRoster) -> None:
        roster.set_fact(self.player, "role", self.timestamp, self.role)


@dataclass(frozen=True, kw_only=True)
class PlayerDisconnect(GameEvent):
    name: ClassVar[EventKindName] = "PlayerDisconnect"
    table: ClassVar[str] = "player_disconnect"
    pattern: ClassVar[re.Pattern[str]] = re.compile(
        r'"(?P<player>.+)" disconnected \(reason "(?P<reason>[^"]*)"\)'
    )
    player_groups: ClassVar[tuple[str, ...]] = ("player",)

    player: Player
    reason: str

    @override
    def apply(self, roster: PlayerRoster) -> None:
        roster.set_fact(self.player, "connected", self.timestamp, False)
        roster.set_fact(self.player, "in_game", self.timestamp, False)
