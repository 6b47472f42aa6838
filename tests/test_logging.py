import logging
from collections.abc import Iterator

import pytest
from rich.logging import RichHandler

from gamelog_archive.core.state import LogContext
from gamelog_archive.engine.logging import (
    ContextFilter,
    RichMarkupFormatter,
    configure_logging,
)
from gamelog_archive.engine.session import GameSessionBuilder


def make_record(message: str, level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord("gamelog_archive.test", level, __file__, 1, message, None, None)


@pytest.fixture
def root_logger() -> Iterator[logging.Logger]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
    root.propagate = True


def test_context_filter_injects_game_and_line():
    builder = GameSessionBuilder(log_context=LogContext())
    builder.log_context.start_game("0123456789abcdef", "eu-1")
    builder.log_context.line_number = 42
    record = make_record("hello")

    assert ContextFilter(builder).filter(record)
    assert getattr(record, "short_game_id") == "01234567"
    assert getattr(record, "server") == "eu-1"
    assert getattr(record, "line_number") == 42


def test_formatter_prefixes_game_and_line():
    record = make_record("Stored game")
    record.short_game_id = "01234567"
    record.line_number = 7

    assert RichMarkupFormatter().format(record).startswith("[dim]01234567:7[/dim]")


def test_formatter_highlights_kinds_and_teams():
    formatted = RichMarkupFormatter().format(
        make_record("Dropping PlayerKill for Alice<2><STEAM_0:0:1><Red>")
    )

    assert "[bold blue]PlayerKill[/bold blue]" in formatted
    assert "<[bold red]Red[/bold red]>" in formatted


def test_formatter_escapes_clan_tags():
    formatted = RichMarkupFormatter().format(make_record("[bk] Alice joined"))

    assert r"\[bk] Alice" in formatted


def test_formatter_marks_warnings():
    formatted = RichMarkupFormatter().format(
        make_record("Removing data from game abc", logging.WARNING)
    )

    assert "[bold magenta]Removing[/bold magenta]" in formatted
    assert "[bold red][bold magenta]" in formatted


def test_configure_logging_installs_rich_handler(root_logger: logging.Logger):
    builder = GameSessionBuilder()

    configure_logging("DEBUG", builder=builder)

    (handler,) = root_logger.handlers
    assert isinstance(handler, RichHandler)
    assert isinstance(handler.formatter, RichMarkupFormatter)
    assert any(isinstance(f, ContextFilter) for f in handler.filters)
    assert root_logger.level == logging.DEBUG
