import logging
import typing
from contextlib import contextmanager

import sqlalchemy as sa
from sqlalchemy.engine import Connection as SaConnection, CursorResult, Engine

from mapkit.config import Settings
from mapkit.connection import Connection, Row, Statement
from mapkit.events import EventDispatcher
from mapkit.loader import Loader
from mapkit.manager import EntityManager
from mapkit.metadata_manager import MetadataManager
from mapkit.storages.sqlalchemy.schema import build_schema


logger = logging.getLogger(__name__)


def _table(name: str, columns: typing.Iterable[str]) -> sa.TableClause:
    return sa.table(name, *(sa.column(column) for column in columns))


def _matching(table: sa.TableClause, identifier: typing.Mapping[str, typing.Any]) -> typing.Any:
    return sa.and_(*(table.c[column] == value for column, value in identifier.items()))


class SqlAlchemyStatement(Statement):
    def __init__(self, result: CursorResult) -> None:
        self._result = result

    def fetch(self) -> typing.Optional[Row]:
        row = self._result.fetchone()
        return dict(row._mapping) if row is not None else None


class SqlAlchemyConnection(Connection):
    """Runs entity manager calls on one SQLAlchemy connection.

    Generated keys are read with ``RETURNING`` where the dialect has it, from the cursor's
    ``lastrowid`` otherwise. Primary keys of tables missing from ``sa_metadata`` are reflected once.
    """

    def __init__(
        self,
        connection: SaConnection,
        events: typing.Optional[EventDispatcher] = None,
        sa_metadata: typing.Optional[sa.MetaData] = None,
    ) -> None:
        self._connection = connection
        self._events = events if events is not None else EventDispatcher()
        self._sa_metadata = sa_metadata
        self._primary_keys: typing.Dict[str, typing.Optional[str]] = {}
        self._last_insert_id: typing.Any = None

    @property
    def event_dispatcher(self) -> EventDispatcher:
        return self._events

    @property
    def sa_connection(self) -> SaConnection:
        return self._connection

    def primary_key(self, table: str) -> typing.Optional[str]:
        """Name of the single-column primary key of ``table``, ``None`` for composite or missing keys."""
        if table not in self._primary_keys:
            if self._sa_metadata is not None and table in self._sa_metadata.tables:
                columns = [column.name for column in self._sa_metadata.tables[table].primary_key.columns]
            else:
                columns = sa.inspect(self._connection).get_pk_constraint(table)["constrained_columns"]
            self._primary_keys[table] = columns[0] if len(columns) == 1 else None
        return self._primary_keys[table]

    def insert(self, table: str, values: typing.Mapping[str, typing.Any]) -> None:
        key = self.primary_key(table)
        statement = sa.insert(_table(table, [*values, key] if key else values)).values(dict(values))

        if key is None:
            self._last_insert_id = self._connection.execute(statement).lastrowid
        elif key in values:
            self._connection.execute(statement)
            self._last_insert_id = values[key]
        elif self._connection.dialect.insert_returning:
            returning = statement.returning(statement.table.c[key])
            self._last_insert_id = self._connection.execute(returning).scalar_one()
        else:
            self._last_insert_id = self._connection.execute(statement).lastrowid
        logger.debug("INSERT %s %r", table, dict(values))

    def update(
        self, table: str, values: typing.Mapping[str, typing.Any], identifier: typing.Mapping[str, typing.Any]
    ) -> None:
        sa_table = _table(table, {**values, **identifier})
        self._connection.execute(sa.update(sa_table).where(_matching(sa_table, identifier)).values(dict(values)))
        logger.debug("UPDATE %s %r WHERE %r", table, dict(values), dict(identifier))

    def delete(self, table: str, identifier: typing.Mapping[str, typing.Any]) -> None:
        sa_table = _table(table, identifier)
        self._connection.execute(sa.delete(sa_table).where(_matching(sa_table, identifier)))
        logger.debug("DELETE %s WHERE %r", table, dict(identifier))

    def fetch_column(self, sql: str, params: typing.Optional[typing.Mapping[str, typing.Any]] = None) -> typing.Any:
        return self._connection.execute(sa.text(sql), dict(params or {})).scalar()

    def quote(self, value: typing.Any) -> str:
        literal = sa.literal(value)
        return str(literal.compile(dialect=self._connection.dialect, compile_kwargs={"literal_binds": True}))

    def last_insert_id(self) -> typing.Any:
        return self._last_insert_id

    def execute(self, query: typing.Any) -> SqlAlchemyStatement:
        return SqlAlchemyStatement(self._connection.execute(query))

    def commit(self) -> None:
        self._connection.commit()

    def rollback(self) -> None:
        self._connection.rollback()

    def close(self) -> None:
        self._connection.close()


def create_entity_manager(
    settings: typing.Optional[Settings] = None,
    engine: typing.Optional[Engine] = None,
    loader: typing.Optional[Loader] = None,
    metadata_manager: typing.Optional[MetadataManager] = None,
    sa_metadata: typing.Optional[sa.MetaData] = None,
) -> EntityManager:
    """Opens a connection and wraps it in a fresh entity manager, one per unit of work.

    The caller owns the connection: commit, roll back and close it through ``manager.connection``,
    or use :func:`entity_manager_scope`.
    """
    settings = settings or Settings()
    engine = engine or sa.create_engine(settings.database_url, echo=settings.echo)
    connection = SqlAlchemyConnection(engine.connect(), EventDispatcher(), sa_metadata)
    return EntityManager(connection, metadata_manager or MetadataManager(loader))


@contextmanager
def entity_manager_scope(
    settings: typing.Optional[Settings] = None,
    engine: typing.Optional[Engine] = None,
    loader: typing.Optional[Loader] = None,
    metadata_manager: typing.Optional[MetadataManager] = None,
    sa_metadata: typing.Optional[sa.MetaData] = None,
) -> typing.Generator[EntityManager, None, None]:
    """Commits when the block succeeds, rolls back when it raises, closes the connection either way."""
    manager = create_entity_manager(settings, engine, loader, metadata_manager, sa_metadata)
    connection = manager.connection
    try:
        yield manager
        connection.commit()
    except Exception:
        connection.rollback()
        logger.warning("Unit of work failed, rolled back")
        raise
    finally:
        connection.close()


__all__ = [
    "SqlAlchemyConnection",
    "SqlAlchemyStatement",
    "build_schema",
    "create_entity_manager",
    "entity_manager_scope",
]
