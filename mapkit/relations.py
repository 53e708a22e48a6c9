import abc
import typing
from collections import defaultdict

import sqlalchemy as sa

from mapkit import types
from mapkit.metadata import Metadata, Relation, RelationKind


class RelationResolver(abc.ABC):
    """Loads the related entities of a whole parent set with one query and attaches them."""

    def __init__(self, manager: typing.Any, metadata: Metadata, relation: Relation) -> None:
        self.manager = manager
        self.metadata = metadata
        self.relation = relation
        self.target_metadata: Metadata = manager.get_metadata(relation.target_class)

    @property
    def key_from(self) -> str:
        return self.relation.key_from

    @property
    def key_to(self) -> str:
        return self.relation.key_to or self.target_metadata.identifier

    @abc.abstractmethod
    def resolve(self, entities: typing.List[typing.Any], query: typing.Any) -> None:
        pass

    def _values(self, entities: typing.Iterable[typing.Any], metadata: Metadata, name: str) -> typing.List[typing.Any]:
        values = []
        for entity in entities:
            value = metadata.get_value(entity, name)
            if value is not None and value != "" and value not in values:
                values.append(value)
        return values

    def _ordered(self, query: typing.Any) -> typing.Any:
        for field, direction in self.relation.order_by:
            query.order_by(field, direction)
        return query

    def _attach(self, entity: typing.Any, value: typing.Any) -> None:
        self.metadata.set_value(entity, self.relation.name, value)


class BelongsTo(RelationResolver):
    def resolve(self, entities: typing.List[typing.Any], query: typing.Any) -> None:
        values = self._values(entities, self.metadata, self.key_from)

        targets = {}
        if values:
            for target in query.where_in(self.key_to, values).get():
                targets[self.target_metadata.get_value(target, self.key_to)] = target

        for entity in entities:
            self._attach(entity, targets.get(self.metadata.get_value(entity, self.key_from)))


class HasOne(RelationResolver):
    def resolve(self, entities: typing.List[typing.Any], query: typing.Any) -> None:
        values = self._values(entities, self.metadata, self.key_from)

        targets = {}
        if values:
            for target in query.where_in(self.key_to, values).get():
                targets.setdefault(self.target_metadata.get_value(target, self.key_to), target)

        for entity in entities:
            self._attach(entity, targets.get(self.metadata.get_value(entity, self.key_from)))


class HasMany(RelationResolver):
    def resolve(self, entities: typing.List[typing.Any], query: typing.Any) -> None:
        values = self._values(entities, self.metadata, self.key_from)

        targets = defaultdict(list)
        if values:
            for target in self._ordered(query.where_in(self.key_to, values)).get():
                targets[self.target_metadata.get_value(target, self.key_to)].append(target)

        for entity in entities:
            self._attach(entity, list(targets.get(self.metadata.get_value(entity, self.key_from), ())))


class ManyToMany(RelationResolver):
    def resolve(self, entities: typing.List[typing.Any], query: typing.Any) -> None:
        values = self._values(entities, self.metadata, self.key_from)

        links: typing.DefaultDict[typing.Any, typing.Set[typing.Any]] = defaultdict(set)
        targets: typing.List[typing.Any] = []
        if values:
            for key_from, key_to in self._links(values):
                links[key_from].add(key_to)

        target_values = {value for linked in links.values() for value in linked}
        if target_values:
            targets = self._ordered(query.where_in(self.key_to, target_values)).get()

        for entity in entities:
            linked = links.get(self.metadata.get_value(entity, self.key_from), set())
            self._attach(
                entity, [target for target in targets if self.target_metadata.get_value(target, self.key_to) in linked]
            )

    def _links(self, values: typing.List[typing.Any]) -> typing.List[typing.Tuple[typing.Any, typing.Any]]:
        relation = self.relation
        through = sa.table(
            relation.table_through, sa.column(relation.key_through_from), sa.column(relation.key_through_to)
        )
        statement = self.manager.connection.execute(
            sa.select(through).where(
                through.c[relation.key_through_from].in_([types.to_storage(value) for value in values])
            )
        )

        type_from = self.metadata.get_field(self.key_from).type
        type_to = self.target_metadata.get_field(self.key_to).type

        links = []
        row = statement.fetch()
        while row is not None:
            links.append(
                (
                    types.from_storage(row[relation.key_through_from], type_from),
                    types.from_storage(row[relation.key_through_to], type_to),
                )
            )
            row = statement.fetch()
        return links


RESOLVERS: typing.Dict[RelationKind, typing.Type[RelationResolver]] = {
    RelationKind.BELONGS_TO: BelongsTo,
    RelationKind.HAS_ONE: HasOne,
    RelationKind.HAS_MANY: HasMany,
    RelationKind.MANY_TO_MANY: ManyToMany,
}
