import enum
import logging
import typing

from mapkit import types
from mapkit.connection import Connection, Statement
from mapkit.entity_map import EntityMap
from mapkit.events import EntityEvent, Events
from mapkit.metadata import Metadata
from mapkit.metadata_manager import MetadataManager
from mapkit.repository import Repository


logger = logging.getLogger(__name__)


class EntityState(enum.Enum):
    MANAGED = 1
    NEW = 2
    DETACHED = 3


class InvalidEntityState(ValueError):
    def __init__(self, message: str, state: typing.Optional[EntityState] = None) -> None:
        super().__init__(message)
        self.state = state


class EntityManager:
    """Persists entities and keeps track of the ones backed by a known row.

    One manager serves one unit of work; its identity map is never shared. Transactions
    spanning several operations belong to the connection.
    """

    def __init__(
        self,
        connection: Connection,
        metadata: MetadataManager,
        event_class: typing.Type[EntityEvent] = EntityEvent,
    ) -> None:
        if not (isinstance(event_class, type) and issubclass(event_class, EntityEvent)):
            raise TypeError(f"The event class {event_class!r} is not a subclass of EntityEvent")

        self._connection = connection
        self._metadata = metadata
        self._event_class = event_class
        self._repositories: typing.Dict[typing.Type, Repository] = {}
        self._entities = EntityMap(self)

    @property
    def connection(self) -> Connection:
        return self._connection

    @property
    def metadata_manager(self) -> MetadataManager:
        return self._metadata

    @property
    def entities(self) -> EntityMap:
        return self._entities

    def get_metadata(self, cls_or_entity: typing.Any) -> Metadata:
        return self._metadata.get(cls_or_entity)

    def get_repository(self, cls: typing.Type) -> Repository:
        if cls not in self._repositories:
            metadata = self.get_metadata(cls)
            repository_class = metadata.repository_class or Repository
            self._repositories[cls] = repository_class(self, metadata)

        return self._repositories[cls]

    def find(self, cls: typing.Type, identifier: typing.Any) -> typing.Optional[typing.Any]:
        return self.get_repository(cls).find(identifier)

    def exists(self, entity: typing.Any) -> bool:
        metadata = self.get_metadata(entity)
        value = metadata.identifier_value(entity)

        if value is None:
            return False

        column = metadata.get_identifier(column=True)
        sql = f"SELECT 1 FROM {metadata.table} WHERE {column}={self._connection.quote(types.to_storage(value))}"
        return bool(self._connection.fetch_column(sql))

    def get_entity_state(self, entity: typing.Any, assume: typing.Optional[EntityState] = None) -> EntityState:
        if self._entities.has(entity):
            return EntityState.MANAGED

        if assume is not None:
            return assume

        if self.get_metadata(entity).identifier_value(entity) is None:
            return EntityState.NEW
        return EntityState.DETACHED

    def get_by_id(self, identifier: typing.Any, cls: typing.Type) -> typing.Optional[typing.Any]:
        return self._entities.get(self.get_metadata(cls).convert_identifier(identifier), cls)

    def related(self, entities: typing.Any, name: str, query: typing.Any) -> None:
        if not isinstance(entities, (list, tuple)):
            entities = [entities]
        if not entities:
            return

        metadata = self.get_metadata(entities[0])
        relation = metadata.get_relation(name)
        relation.resolver(self, metadata, relation).resolve(list(entities), query)

    def save(
        self,
        entity: typing.Any,
        data: typing.Optional[typing.Mapping[str, typing.Any]] = None,
        assume: typing.Optional[EntityState] = EntityState.NEW,
    ) -> None:
        metadata = self.get_metadata(entity)
        identifier = metadata.get_identifier()
        column = metadata.get_identifier(column=True)

        metadata.set_values(entity, data or {})

        self.dispatch_event(Events.PRE_SAVE, entity, metadata)

        state = self.get_entity_state(entity, assume)

        if state is EntityState.NEW:
            self.dispatch_event(Events.PRE_CREATE, entity, metadata)

            value = metadata.identifier_value(entity)
            if value is not None:
                value = metadata.convert_identifier(value)
                metadata.set_value(entity, identifier, value)

            values = metadata.get_values(entity)
            if value is None:
                values.pop(column, None)

            self._connection.insert(metadata.table, values)
            if value is None:
                value = metadata.convert_identifier(self._connection.last_insert_id())
            self._entities.add(entity, value)
            metadata.set_value(entity, identifier, value)
            logger.debug("Inserted %s into %s with %s=%r", type(entity).__name__, metadata.table, column, value)

            self.dispatch_event(Events.POST_CREATE, entity, metadata)

        elif state is EntityState.MANAGED:
            self.dispatch_event(Events.PRE_UPDATE, entity, metadata)

            values = metadata.get_values(entity)
            self._connection.update(metadata.table, values, {column: values[column]})
            logger.debug("Updated %s in %s with %s=%r", type(entity).__name__, metadata.table, column, values[column])

            self.dispatch_event(Events.POST_UPDATE, entity, metadata)

        else:
            raise InvalidEntityState("Detached entity can not be saved", state)

        self.dispatch_event(Events.POST_SAVE, entity, metadata)

    def delete(self, entity: typing.Any) -> None:
        metadata = self.get_metadata(entity)
        identifier = metadata.get_identifier()
        column = metadata.get_identifier(column=True)

        state = self.get_entity_state(entity)

        if state is EntityState.MANAGED:
            self.dispatch_event(Events.PRE_DELETE, entity, metadata)

            value = metadata.identifier_value(entity)
            if value is None:
                raise InvalidEntityState("Can't remove entity with empty identifier value.", state)

            self._connection.delete(metadata.table, {column: value})
            self._entities.remove(entity)
            logger.debug("Deleted %s from %s with %s=%r", type(entity).__name__, metadata.table, column, value)

            self.dispatch_event(Events.POST_DELETE, entity, metadata)

            metadata.set_value(entity, identifier, None)

        elif state is EntityState.DETACHED:
            raise InvalidEntityState("Detached entity can not be removed", state)

        else:
            raise InvalidEntityState(f"Unexpected entity state: {state.name}.", state)

    def hydrate_one(self, statement: Statement, metadata: Metadata) -> typing.Optional[typing.Any]:
        row = statement.fetch()
        if row is None:
            return None
        return self._entities.load(metadata, row)

    def hydrate_all(self, statement: Statement, metadata: Metadata) -> typing.List[typing.Any]:
        result = []
        row = statement.fetch()
        while row is not None:
            result.append(self._entities.load(metadata, row))
            row = statement.fetch()
        return result

    def dispatch_event(self, name: str, entity: typing.Any, metadata: Metadata) -> EntityEvent:
        event = self._event_class(entity, metadata, self)

        for callback in metadata.events.get(name, ()):
            getattr(entity, callback)(event)

        prefix = metadata.event_prefix
        return self._connection.event_dispatcher.dispatch(f"{prefix}.{name}" if prefix else name, event)
