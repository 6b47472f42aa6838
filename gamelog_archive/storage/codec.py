"""Tagged, versioned text encoding for players embedded in stored events.

A player column holds JSON like ``{"$type":"player/v1","nick":...}``. The tag
makes encoded players recognizable among ordinary string columns and lets a
later version add fields without confusing older rows.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, cast

import msgspec

from gamelog_archive.core.player import Player, PlayerRoster
from gamelog_archive.core.types import FactName, FactValue

logger = logging.getLogger("gamelog_archive.codec")

TAG_FIELD = "$type"
PLAYER_TAG = "player/v1"
PLAYER_TAG_PREFIX = f'{{"{TAG_FIELD}":"player/'


class PlayerSnapshot(msgspec.Struct, frozen=True, tag_field=TAG_FIELD, tag=PLAYER_TAG):
    """A player's fixed fields plus every recorded fact version."""

    nick: str
    uid: str
    steam_id: str
    team: str = ""
    facts: dict[str, list[tuple[datetime, FactValue]]] = msgspec.field(
        default_factory=dict
    )

    @classmethod
    def from_player(cls, player: Player) -> PlayerSnapshot:
        return cls(
            nick=player.nick,
            uid=player.uid,
            steam_id=player.steam_id,
            team=player.team,
            facts={name: player.fact_history(name) for name in player.fact_names},
        )

    def to_player(self) -> Player:
        player = Player(
            nick=self.nick,
            uid=self.uid,
            steam_id=self.steam_id,
            team=self.team,
        )
        roster = PlayerRoster()
        for name, versions in self.facts.items():
            for timestamp, value in versions:
                roster.set_fact(player, cast("FactName", name), timestamp, value)
        return player


_encoder = msgspec.json.Encoder()
_decoder = msgspec.json.Decoder(PlayerSnapshot)


def encode_player(player: Player) -> str:
    return _encoder.encode(PlayerSnapshot.from_player(player)).decode("utf-8")


def is_encoded_player(value: object) -> bool:
    return isinstance(value, str) and value.startswith(PLAYER_TAG_PREFIX)


def encode_value(value: Any) -> Any:
    """Encode players, leave scalars untouched."""
    if isinstance(value, Player):
        return encode_player(value)
    return value


def decode_value(value: Any) -> Any:
    """Decode an encoded player; anything else, or a broken encoding, passes through."""
    if not is_encoded_player(value):
        return value
    try:
        return _decoder.decode(value).to_player()
    except msgspec.DecodeError as e:
        logger.debug("Leaving undecodable player value as-is: %s", e)
        return value
