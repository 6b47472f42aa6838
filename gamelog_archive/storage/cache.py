"""Adaptive SQL cache for parsed games.

Every event kind gets its own table. Tables are created the first time a
kind is stored and grow a column the first time a field carries a value,
so new event kinds and fields need no schema declaration.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

import sqlmodel
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    Select,
    String,
    Table,
    TableClause,
    Text,
    column,
    create_engine,
    delete,
    func,
    insert,
    inspect,
    select,
    table,
    text,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, col

from gamelog_archive.core.events import GameEvent, MapLoad
from gamelog_archive.core.registry import EventKind, EventRegistry, default_registry
from gamelog_archive.core.types import SESSION_OPENING_TABLE
from gamelog_archive.errors import CacheReadError
from gamelog_archive.storage.codec import decode_value, encode_value
from gamelog_archive.storage.models import StoredGame

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection, Engine
    from sqlalchemy.types import TypeEngine

    from gamelog_archive.config import ArchiveConfig
    from gamelog_archive.engine.session import GameSession

logger = logging.getLogger("gamelog_archive.cache")


def infer_column_type(value: Any) -> TypeEngine[Any]:
    """Column type for a newly observed field, from its first non-null value."""
    match value:
        case bool():
            return Boolean()
        case int():
            return Integer()
        case float():
            return Float()
        case datetime():
            return DateTime()
        case _:
            # Strings and encoded players
            return Text()


def shared_columns() -> list[Column[Any]]:
    return [
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("game_id", String(64), nullable=False, index=True),
        Column("server", String(255), nullable=False, index=True),
        Column("line_number", Integer, nullable=False, index=True),
        Column("timestamp", DateTime, nullable=False, index=True),
    ]


class EventTables:
    """Attribute and item access to the storage unit of every registered kind.

    Kinds that were never stored resolve to an unbound table with only the
    shared columns, so selections against them can still be built.
    """

    def __init__(self, registry: EventRegistry, tables: Mapping[str, Table]) -> None:
        self._registry: EventRegistry = registry
        self._tables: dict[str, Table] = dict(tables)
        self._placeholders: MetaData = MetaData()

    def __getitem__(self, name: str) -> Table:
        kind = self._registry.kind_for_table(name)
        existing = self._tables.get(kind.table)
        if existing is not None:
            return existing
        if kind.table in self._placeholders.tables:
            return self._placeholders.tables[kind.table]
        return Table(kind.table, self._placeholders, *shared_columns())

    def __getattr__(self, name: str) -> Table:
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]

    def __contains__(self, name: object) -> bool:
        return name in self._tables


class EventCache:
    """
    Stores complete games and reads them back as typed events.
    Unlike a plain connection, queries return fully formed GameEvent objects.
    """

    def __init__(self, engine: Engine, registry: EventRegistry | None = None) -> None:
        self.engine: Engine = engine
        self.registry: EventRegistry = (
            registry if registry is not None else default_registry()
        )
        self.metadata: MetaData = MetaData()

        # Known schema, consulted before every write. Writers hold the lock
        # from refresh through commit.
        self._tables: dict[str, Table] = {}
        self._columns: dict[str, set[str]] = {}
        self._game_tables: set[str] = set()
        self._schema_lock: threading.RLock = threading.RLock()

        SQLModel.metadata.create_all(
            engine,
            tables=[StoredGame.__table__],  # pyright: ignore[reportArgumentType]
        )
        with engine.connect() as conn:
            self._refresh_schema(conn)

    @classmethod
    def from_config(cls, config: ArchiveConfig) -> EventCache:
        engine = create_engine(config.database_url, echo=config.echo_sql)
        return cls(engine, registry=config.build_registry())

    # ------------------------------------------------------------------
    # Schema tracking
    # ------------------------------------------------------------------

    def _refresh_schema(self, conn: Connection) -> None:
        with self._schema_lock:
            inspector = inspect(conn)
            game_tables: set[str] = set()
            for table_name in inspector.get_table_names():
                columns = {c["name"] for c in inspector.get_columns(table_name)}
                if "game_id" in columns:
                    game_tables.add(table_name)
                if table_name not in self.registry.tables:
                    continue
                if self._columns.get(table_name) != columns:
                    _ = self._reflect_table(conn, table_name)
            self._game_tables = game_tables

    def _reflect_table(self, conn: Connection, table_name: str) -> Table:
        stale = self.metadata.tables.get(table_name)
        if stale is not None:
            self.metadata.remove(stale)
        reflected = Table(table_name, self.metadata, autoload_with=conn)
        self._tables[table_name] = reflected
        self._columns[table_name] = {c.name for c in reflected.columns}
        self._game_tables.add(table_name)
        return reflected

    def _forget_schema(self) -> None:
        """Drop cached schema after a rolled back write; it is re-read next time."""
        with self._schema_lock:
            self._tables.clear()
            self._columns.clear()
            self._game_tables.clear()
            self.metadata.clear()

    def known_columns(self, table_name: str) -> frozenset[str]:
        with self._schema_lock:
            return frozenset(self._columns.get(table_name, ()))

    @property
    def tables(self) -> EventTables:
        with self._schema_lock:
            return EventTables(self.registry, self._tables)

    def _ensure_table(
        self,
        conn: Connection,
        kind: EventKind,
        samples: Mapping[str, Any],
    ) -> Table:
        """Create the kind's table if needed and add columns for new fields.

        Runs inside the write transaction. Before any DDL the table is
        inspected again, since another process may have grown it after the
        last refresh.
        """
        with self._schema_lock:
            event_table = self._tables.get(kind.table)
            if event_table is None:
                if inspect(conn).has_table(kind.table):
                    event_table = self._reflect_table(conn, kind.table)
                else:
                    event_table = Table(kind.table, self.metadata, *shared_columns())
                    event_table.create(conn)
                    self._tables[kind.table] = event_table
                    self._columns[kind.table] = {c.name for c in event_table.columns}
                    self._game_tables.add(kind.table)
                    logger.info(
                        "Created storage unit %s for %s", kind.table, kind.name
                    )

            if any(name not in self._columns[kind.table] for name in samples):
                event_table = self._reflect_table(conn, kind.table)

            for name, sample in samples.items():
                if name not in self._columns[kind.table]:
                    new_column = Column(name, infer_column_type(sample))
                    self._add_column(conn, event_table, new_column)

            return event_table

    def _add_column(
        self,
        conn: Connection,
        event_table: Table,
        new_column: Column[Any],
    ) -> None:
        preparer = conn.dialect.identifier_preparer
        column_type = new_column.type.compile(dialect=conn.dialect)
        _ = conn.execute(
            text(
                f"ALTER TABLE {preparer.format_table(event_table)} "
                f"ADD COLUMN {preparer.quote(new_column.name)} {column_type}"
            )
        )
        event_table.append_column(new_column, replace_existing=True)
        self._columns[event_table.name].add(new_column.name)
        logger.info(
            "Added column %s.%s (%s)", event_table.name, new_column.name, column_type
        )

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def store(self, session: GameSession) -> None:
        """Cache a complete game, replacing stale captures of the same match."""
        opening = session.opening_event

        try:
            # The schema view stays locked until commit, so no other store or
            # query can refresh it while this transaction grows tables.
            with self._schema_lock, self.engine.begin() as conn:
                self._refresh_schema(conn)

                if opening is None:
                    logger.warning(
                        "Game %s has no map load, skipping stale capture check",
                        session.game_id[:8],
                    )
                else:
                    _ = self._remove_stale_captures(conn, opening)

                if self._remove_game(conn, session.game_id):
                    logger.info(
                        "Replacing previously stored game %s", session.game_id[:8]
                    )

                batches = self._build_batches(session)
                for kind, rows in batches:
                    event_table = self._prepare_batch(conn, kind, rows)
                    _ = conn.execute(insert(event_table), rows)

                _ = conn.execute(
                    insert(StoredGame),
                    [
                        StoredGame(
                            game_id=session.game_id,
                            server=session.server,
                            opened_at=opening.timestamp if opening else None,
                            map_name=opening.map_name if opening else None,
                            event_count=len(session.events),
                            line_count=session.line_count,
                        ).model_dump()
                    ],
                )
        except SQLAlchemyError:
            self._forget_schema()
            raise

        logger.info(
            "Stored game %s: %d events in %d storage units",
            session.game_id[:8],
            len(session.events),
            len(batches),
        )

    def _remove_stale_captures(self, conn: Connection, opening: MapLoad) -> list[str]:
        """Delete games whose map load matches ``opening`` but whose id differs.

        Such a game is an earlier, incomplete capture of the same match.
        """
        map_loads = self._tables.get(SESSION_OPENING_TABLE)
        if map_loads is None:
            return []

        stale: list[str] = list(
            conn.execute(
                select(map_loads.c.game_id)
                .where(
                    map_loads.c.server == opening.server,
                    map_loads.c.timestamp == opening.timestamp,
                    map_loads.c.game_id != opening.game_id,
                )
                .distinct()
            ).scalars()
        )
        for game_id in stale:
            logger.warning(
                "Removing data from game %s as an incomplete capture", game_id[:8]
            )
            _ = self._remove_game(conn, game_id)
        return stale

    def _remove_game(self, conn: Connection, game_id: str) -> int:
        removed = 0
        for table_name in sorted(self._game_tables):
            game_table = table(table_name, column("game_id"))
            result = conn.execute(
                delete(game_table).where(game_table.c.game_id == game_id)
            )
            removed += max(result.rowcount, 0)
        return removed

    def _build_batches(
        self,
        session: GameSession,
    ) -> list[tuple[EventKind, list[dict[str, Any]]]]:
        batches: dict[str, tuple[EventKind, list[dict[str, Any]]]] = {}
        for event in session.events:
            kind = self.registry.kind_for_event(event)
            # to_record already leaves out the derived game state
            record = {
                name: encode_value(value) for name, value in event.to_record().items()
            }
            _, rows = batches.setdefault(kind.table, (kind, []))
            rows.append(record)
        return list(batches.values())

    def _prepare_batch(
        self,
        conn: Connection,
        kind: EventKind,
        rows: list[dict[str, Any]],
    ) -> Table:
        """Grow the kind's table to fit ``rows`` and give every row the same keys."""
        samples: dict[str, Any] = {}
        for row in rows:
            for name, value in row.items():
                if value is not None and name not in samples:
                    samples[name] = value

        event_table = self._ensure_table(conn, kind, samples)

        # Bulk inserts need uniform rows. Fields that never carried a value
        # have no column yet and are left out.
        known = self._columns[kind.table]
        keys = [k for k in dict.fromkeys(k for row in rows for k in row) if k in known]
        rows[:] = [{k: row.get(k) for k in keys} for row in rows]
        return event_table

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def query(self, build: Callable[[EventTables], Select[Any]]) -> list[GameEvent]:
        """Run the selection ``build`` returns and rebuild its rows as events.

        ``build`` receives the storage units by name, e.g.
        ``cache.query(lambda t: select(t.player_kill).where(t.player_kill.c.weapon == "knife"))``.
        """
        with self.engine.connect() as conn:
            self._refresh_schema(conn)

            statement = build(self.tables)
            if not isinstance(statement, Select):
                raise CacheReadError(
                    f"Expected a select statement, got {type(statement).__name__}"
                )

            froms = statement.get_final_froms()
            if len(froms) != 1 or not isinstance(froms[0], TableClause):
                raise CacheReadError(
                    "A cache query must select from exactly one storage unit"
                )

            source = froms[0]
            kind = self.registry.kind_for_table(source.name)
            if source.name not in self._columns:
                return []

            rows = conn.execute(statement).mappings().all()

        events: list[GameEvent] = []
        for row in rows:
            record = {name: decode_value(value) for name, value in row.items()}
            try:
                events.append(kind.reconstruct(record))
            except TypeError as e:
                raise CacheReadError(
                    f"Row from {source.name} is not a full {kind.name}: {e}"
                ) from e
        return events

    def events(
        self,
        kind: str | type[GameEvent],
        game_id: str | None = None,
    ) -> list[GameEvent]:
        """All stored events of one kind, in log order."""
        kind_name = kind if isinstance(kind, str) else kind.name
        table_name = self.registry.kind_for_name(kind_name).table

        def build(tables: EventTables) -> Select[Any]:
            event_table = tables[table_name]
            statement = select(event_table)
            if game_id is not None:
                statement = statement.where(event_table.c.game_id == game_id)
            return statement.order_by(event_table.c.game_id, event_table.c.line_number)

        return self.query(build)

    def has_game(self, game_id: str) -> bool:
        """Returns True if this game has been cached.

        A missing map load table means nothing was cached yet. Other backend
        errors propagate.
        """
        with self.engine.connect() as conn:
            if not inspect(conn).has_table(SESSION_OPENING_TABLE):
                return False
            map_loads = table(SESSION_OPENING_TABLE, column("game_id"))
            count = conn.execute(
                select(func.count())
                .select_from(map_loads)
                .where(map_loads.c.game_id == game_id)
            ).scalar_one()
        return count > 0

    def stored_games(self) -> list[StoredGame]:
        with Session(self.engine) as session:
            statement = sqlmodel.select(StoredGame).order_by(col(StoredGame.stored_at))
            return list(session.exec(statement).all())
