from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gamelog_archive.core.player import Player


@dataclass(frozen=True, slots=True)
class GameState:
    """Who is connected and playing at one point of a game.

    Derived from the player fact timelines; never persisted.
    """

    timestamp: datetime
    connected: tuple[Player, ...] = ()
    in_game: tuple[Player, ...] = ()
    teams: Mapping[str, tuple[Player, ...]] = field(default_factory=dict)

    @property
    def red(self) -> tuple[Player, ...]:
        return self.teams.get("Red", ())

    @property
    def blue(self) -> tuple[Player, ...]:
        return self.teams.get("Blue", ())

    @property
    def player_count(self) -> int:
        return len(self.in_game)


@dataclass(slots=True)
class LogContext:
    """Runtime context injected into every log record while a log is parsed."""

    game_id: str = "-"
    server: str = "-"
    line_number: int = 0

    @property
    def short_game_id(self) -> str:
        return self.game_id[:8]

    def start_game(self, game_id: str, server: str) -> None:
        self.game_id = game_id
        self.server = server
        self.line_number = 0
