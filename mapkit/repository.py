import typing

from mapkit.metadata import Metadata
from mapkit.query import QueryBuilder


EntityType = typing.TypeVar("EntityType")
IdentityType = typing.TypeVar("IdentityType")


class Repository(typing.Generic[EntityType, IdentityType]):
    """Finder facade for one entity class; holds no state besides its manager and metadata."""

    def __init__(self, manager: typing.Any, metadata: Metadata) -> None:
        self._manager = manager
        self._metadata = metadata

    @property
    def manager(self) -> typing.Any:
        return self._manager

    @property
    def metadata(self) -> Metadata:
        return self._metadata

    def query(self) -> QueryBuilder:
        return QueryBuilder(self._manager, self._metadata)

    def where(self, *clauses: typing.Any, **equals: typing.Any) -> QueryBuilder:
        return self.query().where(*clauses, **equals)

    def find(self, identity: IdentityType) -> typing.Optional[EntityType]:
        return self.where(**{self._metadata.identifier: identity}).first()

    def find_all(self) -> typing.List[EntityType]:
        return self.query().get()

    def find_by(self, **criteria: typing.Any) -> typing.List[EntityType]:
        return self.where(**criteria).get()

    def find_one_by(self, **criteria: typing.Any) -> typing.Optional[EntityType]:
        return self.where(**criteria).first()

    def count(self) -> int:
        return self.query().count()

    def save(self, entity: EntityType, data: typing.Optional[typing.Mapping[str, typing.Any]] = None) -> None:
        self._manager.save(entity, data)

    def delete(self, entity: EntityType) -> None:
        self._manager.delete(entity)
