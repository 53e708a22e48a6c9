import typing

from mapkit.events import Events
from mapkit.metadata import Metadata


Key = typing.Tuple[typing.Type, typing.Any]


class EntityMap:
    """Identity map: at most one managed instance per (class, identifier) within one entity manager."""

    def __init__(self, manager: typing.Any) -> None:
        self._manager = manager
        self._entities: typing.Dict[Key, typing.Any] = {}
        # id(entity) -> key, entities are unhashable attrs instances
        self._keys: typing.Dict[int, Key] = {}

    def __len__(self) -> int:
        return len(self._entities)

    def has(self, entity: typing.Any) -> bool:
        key = self._keys.get(id(entity))
        return key is not None and self._entities.get(key) is entity

    def get(self, identifier: typing.Any, cls: typing.Type) -> typing.Optional[typing.Any]:
        return self._entities.get((cls, identifier))

    def add(self, entity: typing.Any, identifier: typing.Any) -> None:
        key = (type(entity), identifier)
        self._entities[key] = entity
        self._keys[id(entity)] = key

    def remove(self, entity: typing.Any) -> None:
        key = self._keys.pop(id(entity), None)
        if key is not None and self._entities.get(key) is entity:
            del self._entities[key]

    def clear(self) -> None:
        self._entities.clear()
        self._keys.clear()

    def load(self, metadata: Metadata, row: typing.Mapping[str, typing.Any]) -> typing.Any:
        identifier = metadata.identifier_from_row(row)

        entity = self.get(identifier, metadata.cls)
        if entity is not None:
            return entity

        entity = metadata.new_instance()
        metadata.hydrate(entity, row)
        self.add(entity, identifier)

        self._manager.dispatch_event(Events.POST_LOAD, entity, metadata)

        return entity
