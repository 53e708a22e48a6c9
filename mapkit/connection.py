import abc
import typing

from mapkit.events import EventDispatcher


Row = typing.Mapping[str, typing.Any]


class Statement(abc.ABC):
    @abc.abstractmethod
    def fetch(self) -> typing.Optional[Row]:
        """Next row as a column -> value mapping, ``None`` once exhausted."""


class Connection(abc.ABC):
    """Storage boundary of the entity manager. Errors raised here propagate unchanged."""

    @property
    @abc.abstractmethod
    def event_dispatcher(self) -> EventDispatcher:
        pass

    @abc.abstractmethod
    def insert(self, table: str, values: typing.Mapping[str, typing.Any]) -> None:
        pass

    @abc.abstractmethod
    def update(
        self, table: str, values: typing.Mapping[str, typing.Any], identifier: typing.Mapping[str, typing.Any]
    ) -> None:
        pass

    @abc.abstractmethod
    def delete(self, table: str, identifier: typing.Mapping[str, typing.Any]) -> None:
        pass

    @abc.abstractmethod
    def fetch_column(self, sql: str, params: typing.Optional[typing.Mapping[str, typing.Any]] = None) -> typing.Any:
        pass

    @abc.abstractmethod
    def quote(self, value: typing.Any) -> str:
        pass

    @abc.abstractmethod
    def last_insert_id(self) -> typing.Any:
        pass

    @abc.abstractmethod
    def execute(self, query: typing.Any) -> Statement:
        pass
