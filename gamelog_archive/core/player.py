"""Players and their fact timelines.

A player is identified by Steam ID, except bots: every bot shares the
``BOT`` placeholder, so two bots are told apart by nickname instead.
"""

import re
from bisect import bisect_right
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import override

from gamelog_archive.core.state import GameState
from gamelog_archive.core.types import BOT_STEAM_ID, FactName, FactValue
from gamelog_archive.errors import MalformedReferenceError

REFERENCE_PATTERN = re.compile(
    r"^(?P<nick>.*)<(?P<uid>[^<>]*)><(?P<steam_id>[^<>]*)><(?P<team>[^<>]*)>$"
)


@dataclass(frozen=True, slots=True)
class PlayerReference:
    """A player as written in one log line, before identity resolution."""

    nick: str
    uid: str
    steam_id: str
    team: str

    @property
    def is_bot(self) -> bool:
        return self.steam_id == BOT_STEAM_ID


def parse_player_reference(text: str) -> PlayerReference:
    """Split ``nick<uid><steam_id><team>`` into its parts."""
    match = REFERENCE_PATTERN.match(text)
    if match is None:
        raise MalformedReferenceError(f"Not a player reference: {text!r}")
    if not match.group("steam_id"):
        raise MalformedReferenceError(f"Player reference without Steam ID: {text!r}")
    return PlayerReference(**match.groupdict())


@dataclass(slots=True)
class FactTimeline:
    """Append-only history of one fact, ordered by timestamp."""

    timestamps: list[datetime] = field(default_factory=list)
    values: list[FactValue] = field(default_factory=list)

    def record(self, timestamp: datetime, value: FactValue) -> None:
        # Equal timestamps keep recording order, so the later write wins.
        idx = bisect_right(self.timestamps, timestamp)
        self.timestamps.insert(idx, timestamp)
        self.values.insert(idx, value)

    def value_as_of(self, timestamp: datetime) -> FactValue:
        idx = bisect_right(self.timestamps, timestamp)
        if idx == 0:
            return None
        return self.values[idx - 1]

    def items(self) -> list[tuple[datetime, FactValue]]:
        return list(zip(self.timestamps, self.values, strict=True))

    def __len__(self) -> int:
        return len(self.timestamps)


@dataclass(eq=False, slots=True)
class Player:
    nick: str
    uid: str
    steam_id: str
    team: str = ""

    # Written only through PlayerRoster.set_fact
    _facts: dict[FactName, FactTimeline] = field(
        default_factory=dict, init=False, repr=False
    )

    @property
    def is_bot(self) -> bool:
        return self.steam_id == BOT_STEAM_ID

    @property
    def is_blue(self) -> bool:
        return self.team == "Blue"

    @property
    def is_red(self) -> bool:
        return self.team == "Red"

    @property
    def is_spectator(self) -> bool:
        return self.team == "Spectator"

    @property
    def is_unassigned(self) -> bool:
        """Unassigned players can be treated as a fourth team."""
        return self.team == "Unassigned"

    @property
    def has_team(self) -> bool:
        return self.is_red or self.is_blue

    @property
    def fact_names(self) -> tuple[FactName, ...]:
        return tuple(self._facts)

    @property
    def identity_key(self) -> tuple[bool, str]:
        if self.is_bot:
            return (True, self.nick)
        return (False, self.steam_id)

    def fact_as_of(self, name: FactName, timestamp: datetime) -> FactValue:
        timeline = self._facts.get(name)
        if timeline is None:
            return None
        return timeline.value_as_of(timestamp)

    def fact_history(self, name: FactName) -> list[tuple[datetime, FactValue]]:
        timeline = self._facts.get(name)
        return timeline.items() if timeline is not None else []

    @override
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Player):
            return NotImplemented
        if self.is_bot and other.is_bot:
            return self.nick == other.nick
        return self.steam_id == other.steam_id

    @override
    def __hash__(self) -> int:
        return hash(self.identity_key)

    @override
    def __str__(self) -> str:
        return f"{self.nick}<{self.uid}><{self.steam_id}><{self.team}>"


class PlayerRoster:
    """All players discovered within one game session."""

    def __init__(self) -> None:
        self._players: dict[tuple[bool, str], Player] = {}

    def resolve(
        self,
        reference: PlayerReference | str,
        timestamp: datetime | None = None,
    ) -> Player:
        """Return the session's player for ``reference``, registering it if new."""
        if isinstance(reference, str):
            reference = parse_player_reference(reference)

        key = (True, reference.nick) if reference.is_bot else (False, reference.steam_id)
        player = self._players.get(key)
        if player is None:
            player = Player(
                nick=reference.nick,
                uid=reference.uid,
                steam_id=reference.steam_id,
                team=reference.team,
            )
            self._players[key] = player
            if timestamp is not None:
                self.set_fact(player, "team", timestamp, reference.team)
            return player

        # Nick and uid follow the latest reference
        player.nick = reference.nick
        player.uid = reference.uid
        if reference.team != player.team:
            player.team = reference.team
            if timestamp is not None:
                self.set_fact(player, "team", timestamp, reference.team)
        return player

    def set_fact(
        self,
        player: Player,
        name: FactName,
        timestamp: datetime,
        value: FactValue,
    ) -> None:
        timelines = player._facts  # pyright: ignore[reportPrivateUsage]
        timelines.setdefault(name, FactTimeline()).record(timestamp, value)

    def fact_as_of(
        self,
        player: Player,
        name: FactName,
        timestamp: datetime,
    ) -> FactValue:
        return player.fact_as_of(name, timestamp)

    def snapshot(self, timestamp: datetime) -> GameState:
        """Derive the overall game state as of ``timestamp``."""
        connected = tuple(p for p in self if p.fact_as_of("connected", timestamp))
        in_game = tuple(p for p in self if p.fact_as_of("in_game", timestamp))

        teams: dict[str, list[Player]] = {}
        for p in in_game:
            team = p.fact_as_of("team", timestamp)
            teams.setdefault(team if isinstance(team, str) else p.team, []).append(p)

        return GameState(
            timestamp=timestamp,
            connected=connected,
            in_game=in_game,
            teams={team: tuple(members) for team, members in teams.items()},
        )

    @property
    def players(self) -> list[Player]:
        return list(self._players.values())

    def __iter__(self) -> Iterator[Player]:
        return iter(self._players.values())

    def __len__(self) -> int:
        return len(self._players)

    def __contains__(self, player: object) -> bool:
        return isinstance(player, Player) and player.identity_key in self._players
