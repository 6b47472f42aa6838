from dataclasses import dataclass
from datetime import datetime, timedelta

from gamelog_archive.core.registry import EventRegistry, default_registry
from gamelog_archive.core.state import LogContext
from gamelog_archive.core.types import LOG_TIMESTAMP_FORMAT
from gamelog_archive.engine.session import GameSession, GameSessionBuilder

DEFAULT_START = datetime(2013, 10, 13, 21, 24, 25)


@dataclass
class PlayerConfig:
    nick: str
    uid: int
    steam_id: str
    team: str = ""

    def ref(self, team: str | None = None) -> str:
        """Render as ``nick<uid><steam_id><team>``, optionally on another team."""
        return f"{self.nick}<{self.uid}><{self.steam_id}><{self.team if team is None else team}>"


class LogScenario:
    """
    A reusable harness that writes timestamped log lines for testing.
    Each helper appends one line and advances the clock.
    """

    def __init__(
        self,
        start: datetime = DEFAULT_START,
        step: timedelta = timedelta(seconds=1),
        server: str = "test-server",
        registry: EventRegistry | None = None,
    ):
        self.clock: datetime = start
        self.step: timedelta = step
        self.server: str = server
        self.registry: EventRegistry = registry if registry is not None else default_registry()
        self.lines: list[str] = []

    def line(self, message: str, timestamp: datetime | None = None) -> datetime:
        """Append a raw message and return the timestamp it was written with."""
        ts = timestamp or self.clock
        self.lines.append(f"L {ts.strftime(LOG_TIMESTAMP_FORMAT)}: {message}")
        self.clock = ts + self.step
        return ts

    def map_load(self, map_name: str = "cp_badlands") -> datetime:
        return self.line(f'Loading map "{map_name}"')

    def connect(self, player: PlayerConfig, address: str = "10.0.0.1:27005") -> datetime:
        return self.line(f'"{player.ref()}" connected, address "{address}"')

    def enter(self, player: PlayerConfig) -> datetime:
        return self.line(f'"{player.ref()}" entered the game')

    def kill(
        self,
        attacker: PlayerConfig,
        victim: PlayerConfig,
        weapon: str = "scattergun",
        customkill: str | None = None,
    ) -> datetime:
        message = f'"{attacker.ref()}" killed "{victim.ref()}" with "{weapon}"'
        if customkill is not None:
            message += f' (customkill "{customkill}")'
        return self.line(message)

    def change_role(self, player: PlayerConfig, role: str) -> datetime:
        return self.line(f'"{player.ref()}" changed role to "{role}"')

    def disconnect(self, player: PlayerConfig, reason: str = "Disconnect by user.") -> datetime:
        return self.line(f'"{player.ref()}" disconnected (reason "{reason}")')

    def build(self, lines: list[str] | None = None) -> GameSession:
        builder = GameSessionBuilder(
            registry=self.registry, server=self.server, log_context=LogContext()
        )
        return builder.build(self.lines if lines is None else lines)


ALICE = PlayerConfig("Alice", 2, "STEAM_0:0:1", "Red")
BOB = PlayerConfig("Bob", 3, "STEAM_0:1:2", "Blue")
CAROL = PlayerConfig("Carol", 4, "[U:1:3003]", "Blue")
