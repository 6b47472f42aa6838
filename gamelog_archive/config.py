from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import msgspec

from gamelog_archive.core.registry import default_registry
from gamelog_archive.errors import ConfigError, UnknownEventKindError

if TYPE_CHECKING:
    from gamelog_archive.core.registry import EventRegistry


class ArchiveConfig(msgspec.Struct, kw_only=True, forbid_unknown_fields=True):
    """Settings for one archive, usually read from a TOML file.

    An empty ``event_kinds`` enables every built-in kind.
    """

    database_url: str = "sqlite:///gamelog_archive.db"
    echo_sql: bool = False
    log_level: str = "INFO"
    server: str = "unknown"
    event_kinds: list[str] = msgspec.field(default_factory=list)

    @classmethod
    def from_toml(cls, path: str | Path) -> ArchiveConfig:
        try:
            content = Path(path).read_bytes()
        except OSError as e:
            raise ConfigError(f"Could not read config file {path}: {e}") from e
        try:
            return msgspec.toml.decode(content, type=cls)
        except msgspec.DecodeError as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e

    def build_registry(self) -> EventRegistry:
        try:
            return default_registry(self.event_kinds or None)
        except UnknownEventKindError as e:
            raise ConfigError(str(e)) from e
