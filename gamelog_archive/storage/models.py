"""Database models for the game capture ledger."""

import datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class StoredGame(SQLModel, table=True):
    """
    One stored game capture.
    At most one capture survives per server and map load timestamp.
    """

    __tablename__ = "stored_games"  # pyright: ignore[reportAssignmentType, reportUnannotatedClassAttribute]
    __table_args__ = (UniqueConstraint("server", "opened_at"),)

    # Primary Key
    game_id: str = Field(primary_key=True)

    # Capture identity
    server: str = Field(index=True)
    opened_at: datetime.datetime | None = None  # NULL when the log has no map load
    map_name: str | None = None

    # Contents
    event_count: int
    line_count: int

    stored_at: datetime.datetime = Field(
        default_factory=lambda: datetime.datetime.now(datetime.UTC),
    )
