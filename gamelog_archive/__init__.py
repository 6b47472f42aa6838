from gamelog_archive.config import ArchiveConfig
from gamelog_archive.core.events import (
    GameEvent,
    MapLoad,
    PlayerChangeRole,
    PlayerConnect,
    PlayerDisconnect,
    PlayerEnterGame,
    PlayerKill,
)
from gamelog_archive.core.player import Player, PlayerRoster, parse_player_reference
from gamelog_archive.core.registry import EventKind, EventRegistry, default_registry
from gamelog_archive.engine.session import GameSession, GameSessionBuilder
from gamelog_archive.errors import (
    CacheReadError,
    ConfigError,
    GameLogError,
    MalformedReferenceError,
    UnknownEventKindError,
)
from gamelog_archive.storage.cache import EventCache

__all__ = [
    "ArchiveConfig",
    "CacheReadError",
    "ConfigError",
    "EventCache",
    "EventKind",
    "EventRegistry",
    "GameEvent",
    "GameLogError",
    "GameSession",
    "GameSessionBuilder",
    "MalformedReferenceError",
    "MapLoad",
    "Player",
    "PlayerChangeRole",
    "PlayerConnect",
    "PlayerDisconnect",
    "PlayerEnterGame",
    "PlayerKill",
    "PlayerRoster",
    "UnknownEventKindError",
    "default_registry",
    "parse_player_reference",
]
