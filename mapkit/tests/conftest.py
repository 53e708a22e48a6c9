import typing

import pytest
from _pytest.config.argparsing import Parser

from mapkit.auth import SessionInterface
from mapkit.connection import Connection, Statement
from mapkit.events import EventDispatcher
from mapkit.loader import AttributeLoader
from mapkit.manager import EntityManager
from mapkit.metadata_manager import MetadataManager


def pytest_addoption(parser: Parser) -> None:
    parser.addoption("--sqlalchemy-url", action="store", default="sqlite://")


class RecordingStatement(Statement):
    def __init__(self, rows: typing.List[typing.Dict]) -> None:
        self._rows = list(rows)

    def fetch(self) -> typing.Optional[typing.Dict]:
        return self._rows.pop(0) if self._rows else None


class RecordingConnection(Connection):
    """Remembers every storage call instead of touching a database."""

    def __init__(self, events: EventDispatcher) -> None:
        self.calls: typing.List[tuple] = []
        self.rows: typing.List[typing.Dict] = []
        self.column_value: typing.Any = None
        self._events = events
        self._next_id = 0

    @property
    def event_dispatcher(self) -> EventDispatcher:
        return self._events

    def insert(self, table, values) -> None:
        self._next_id += 1
        self.calls.append(("insert", table, dict(values)))

    def update(self, table, values, identifier) -> None:
        self.calls.append(("update", table, dict(values), dict(identifier)))

    def delete(self, table, identifier) -> None:
        self.calls.append(("delete", table, dict(identifier)))

    def fetch_column(self, sql, params=None) -> typing.Any:
        self.calls.append(("fetch_column", sql))
        return self.column_value

    def quote(self, value) -> str:
        return f"'{value}'" if isinstance(value, str) else str(value)

    def last_insert_id(self) -> int:
        return self._next_id

    def execute(self, query) -> RecordingStatement:
        self.calls.append(("execute", query))
        return RecordingStatement(self.rows)


class ArraySession(SessionInterface):
    def __init__(self) -> None:
        self.values: typing.Dict[str, typing.Any] = {}
        self.migrations = 0
        self.invalidations = 0

    def get(self, name, default=None):
        return self.values.get(name, default)

    def set(self, name, value) -> None:
        self.values[name] = value

    def remove(self, name) -> None:
        self.values.pop(name, None)

    def migrate(self) -> None:
        self.migrations += 1

    def invalidate(self) -> None:
        self.values.clear()
        self.invalidations += 1


@pytest.fixture()
def events() -> EventDispatcher:
    return EventDispatcher()


@pytest.fixture()
def metadata_manager() -> MetadataManager:
    return MetadataManager(AttributeLoader())


@pytest.fixture()
def connection(events: EventDispatcher) -> Connection:
    return RecordingConnection(events)


@pytest.fixture()
def manager(connection: Connection, metadata_manager: MetadataManager) -> EntityManager:
    return EntityManager(connection, metadata_manager)


@pytest.fixture()
def session() -> ArraySession:
    return ArraySession()


@pytest.fixture()
def statement() -> typing.Callable[[typing.List[typing.Dict]], Statement]:
    return RecordingStatement
