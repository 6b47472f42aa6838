from datetime import datetime

import pytest

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
from gamelog_archive.core.registry import (
    EventKind,
    EventRegistry,
    LineContext,
    default_registry,
    split_log_line,
)
from gamelog_archive.errors import CacheReadError, UnknownEventKindError

T0 = datetime(2013, 10, 13, 21, 24, 25)


def make_context(roster: PlayerRoster, line_number: int = 1) -> LineContext:
    return LineContext(
        game_id="g" * 40,
        server="test-server",
        line_number=line_number,
        roster=roster,
    )


def test_split_log_line():
    timestamp, message = split_log_line('L 10/13/2013 - 21:24:25: Loading map "ctf_2fort"\n')

    assert timestamp == T0
    assert message == 'Loading map "ctf_2fort"'


def test_split_log_line_without_prefix():
    assert split_log_line("Server cvars start") == (None, "Server cvars start")


def test_split_log_line_with_invalid_date():
    timestamp, message = split_log_line("L 13/45/2013 - 21:24:25: hello")

    assert timestamp is None
    assert message == "hello"


def test_alice_and_bob_scenario(registry: EventRegistry, roster: PlayerRoster):
    lines = [
        'L 10/13/2013 - 21:24:25: "Alice<1><STEAM_0:1:111><>" entered the game',
        'L 10/13/2013 - 21:24:30: "Alice<1><STEAM_0:1:111><Red>" killed '
        '"Bob<2><STEAM_0:1:222><Blue>" with "rocket_launcher"',
    ]
    events = [
        registry.parse_line(line, make_context(roster, n))
        for n, line in enumerate(lines, start=1)
    ]

    enter, kill = events
    assert isinstance(enter, PlayerEnterGame)
    assert isinstance(kill, PlayerKill)
    assert kill.weapon == "rocket_launcher"
    assert kill.customkill is None

    # One player each despite two references to Alice
    assert len(roster) == 2
    assert enter.player is kill.attacker
    alice = kill.attacker
    assert alice.fact_as_of("in_game", kill.timestamp) is True
    assert alice.team == "Red"
    assert alice.fact_as_of("team", enter.timestamp) == ""

    assert kill.state is not None
    assert set(kill.state.in_game) == {alice, kill.victim}


def test_bots_with_different_nicks_parse_to_distinct_players(
    registry: EventRegistry, roster: PlayerRoster
):
    event = registry.parse_line(
        'L 10/13/2013 - 21:24:25: "Heavy<7><BOT><Blue>" killed '
        '"Scout<8><BOT><Red>" with "minigun"',
        make_context(roster),
    )

    assert isinstance(event, PlayerKill)
    assert event.attacker is not event.victim
    assert event.attacker.is_bot and event.victim.is_bot
    assert len(roster) == 2


def test_customkill_is_captured(registry: EventRegistry, roster: PlayerRoster):
    event = registry.parse_line(
        'L 10/13/2013 - 21:24:25: "Alice<1><STEAM_0:1:111><Red>" killed '
        '"Bob<2><STEAM_0:1:222><Blue>" with "knife" (customkill "backstab")',
        make_context(roster),
    )

    assert isinstance(event, PlayerKill)
    assert event.weapon == "knife"
    assert event.customkill == "backstab"


@pytest.mark.parametrize(
    ("message", "event_type"),
    [
        ('Loading map "ctf_2fort"', MapLoad),
        ('"Alice<1><STEAM_0:1:111><>" connected, address "10.0.0.1:27005"', PlayerConnect),
        ('"Alice<1><STEAM_0:1:111><Red>" changed role to "soldier"', PlayerChangeRole),
        ('"Alice<1><STEAM_0:1:111><Red>" disconnected (reason "timed out")', PlayerDisconnect),
    ],
)
def test_each_builtin_kind_is_recognized(
    registry: EventRegistry,
    roster: PlayerRoster,
    message: str,
    event_type: type[GameEvent],
):
    event = registry.parse_line(f"L 10/13/2013 - 21:24:25: {message}", make_context(roster))
    assert type(event) is event_type


def test_facts_follow_connect_role_and_disconnect(
    registry: EventRegistry, roster: PlayerRoster
):
    ref = "Alice<1><STEAM_0:1:111><Red>"
    lines = [
        f'L 10/13/2013 - 21:24:25: "{ref}" connected, address "10.0.0.1:27005"',
        f'L 10/13/2013 - 21:24:26: "{ref}" changed role to "medic"',
        f'L 10/13/2013 - 21:24:40: "{ref}" disconnected (reason "Disconnect by user.")',
    ]
    connect, role, disconnect = (
        registry.parse_line(line, make_context(roster, n))
        for n, line in enumerate(lines, start=1)
    )
    assert isinstance(connect, PlayerConnect)
    assert isinstance(role, PlayerChangeRole)
    assert isinstance(disconnect, PlayerDisconnect)

    alice = connect.player
    assert alice.fact_as_of("connected", role.timestamp) is True
    assert alice.fact_as_of("address", role.timestamp) == "10.0.0.1:27005"
    assert alice.fact_as_of("role", role.timestamp) == "medic"
    assert alice.fact_as_of("connected", disconnect.timestamp) is False
    assert alice.fact_as_of("in_game", disconnect.timestamp) is False
    assert disconnect.reason == "Disconnect by user."


def test_unmodeled_line_returns_none(registry: EventRegistry, roster: PlayerRoster):
    event = registry.parse_line(
        'L 10/13/2013 - 21:24:25: World triggered "Round_Start"', make_context(roster)
    )
    assert event is None


def test_line_without_timestamp_uses_context_timestamp(
    registry: EventRegistry, roster: PlayerRoster
):
    context = make_context(roster)
    context.timestamp = T0

    event = registry.parse_line('Loading map "ctf_2fort"', context)

    assert isinstance(event, MapLoad)
    assert event.timestamp == T0


def test_line_without_any_timestamp_is_skipped(
    registry: EventRegistry, roster: PlayerRoster
):
    assert registry.parse_line('Loading map "ctf_2fort"', make_context(roster)) is None


def test_malformed_reference_drops_event_and_leaves_roster_untouched(
    registry: EventRegistry,
    roster: PlayerRoster,
    caplog: pytest.LogCaptureFixture,
):
    event = registry.parse_line(
        'L 10/13/2013 - 21:24:25: "Alice<1><STEAM_0:1:111><Red>" killed '
        '"Bob<2><><Blue>" with "rocket_launcher"',
        make_context(roster),
    )

    assert event is None
    assert len(roster) == 0
    assert "Dropping PlayerKill" in caplog.text


def test_register_rejects_duplicates():
    registry = EventRegistry([MapLoad])

    with pytest.raises(ValueError, match="already registered"):
        _ = registry.register(MapLoad)
    with pytest.raises(ValueError, match="already used"):
        _ = registry.register(
            EventKind(name="PlayerKill", table="map_load", event_type=PlayerKill)
        )


def test_kind_lookups(registry: EventRegistry):
    kind = registry.kind_for_table("player_kill")

    assert kind.name == "PlayerKill"
    assert kind.event_type is PlayerKill
    assert registry.kind_for_name("PlayerKill") is kind
    assert "PlayerKill" in registry
    assert len(registry) == 6
    assert registry.tables[0] == "map_load"


def test_unknown_kind_lookups_raise(registry: EventRegistry):
    with pytest.raises(UnknownEventKindError, match="does not map"):
        _ = registry.kind_for_table("round_win")
    with pytest.raises(CacheReadError):
        _ = registry.kind_for_name("RoundWin")
    with pytest.raises(KeyError):
        _ = registry.kind_for_name("RoundWin")


def test_default_registry_subset():
    registry = default_registry(["PlayerKill", "MapLoad"])

    # Built-in order is kept regardless of the order asked for
    assert [k.name for k in registry] == ["MapLoad", "PlayerKill"]

    with pytest.raises(UnknownEventKindError):
        _ = default_registry(["RoundWin"])


def test_restricted_registry_ignores_other_kinds(roster: PlayerRoster):
    registry = default_registry(["MapLoad"])

    event = registry.parse_line(
        'L 10/13/2013 - 21:24:25: "Alice<1><STEAM_0:1:111><>" entered the game',
        make_context(roster),
    )
    assert event is None
    assert len(roster) == 0


def test_reconstruct_ignores_unknown_columns():
    kind = EventKind.of(MapLoad)
    record = {
        "id": 7,
        "game_id": "abc",
        "server": "test-server",
        "line_number": 1,
        "timestamp": T0,
        "map_name": "ctf_2fort",
        "some_later_field": None,
    }

    event = kind.reconstruct(record)

    assert event == MapLoad(
        game_id="abc",
        server="test-server",
        line_number=1,
        timestamp=T0,
        map_name="ctf_2fort",
    )
