from typing import Literal

TeamName = Literal[
    "Red",
    "Blue",
    "Spectator",
    "Unassigned",
    "",  # not assigned yet
]

FactName = Literal[
    "address",
    "connected",
    "in_game",
    "role",
    "team",
]

EventKindName = Literal[
    "MapLoad",
    "PlayerChangeRole",
    "PlayerConnect",
    "PlayerDisconnect",
    "PlayerEnterGame",
    "PlayerKill",
]

FactValue = bool | str | None

BOT_STEAM_ID = "BOT"

# Storage unit holding the event kind that opens a new game capture.
SESSION_OPENING_TABLE = "map_load"

LOG_TIMESTAMP_FORMAT = "%m/%d/%Y - %H:%M:%S"
