import typing

import sqlalchemy as sa

from mapkit import types
from mapkit.metadata import Metadata


Constraint = typing.Optional[typing.Callable[["QueryBuilder"], typing.Any]]


class QueryBuilder:
    """Selects entities of one class; rows are turned into managed entities by the entity manager."""

    def __init__(self, manager: typing.Any, metadata: Metadata) -> None:
        self._manager = manager
        self._metadata = metadata
        self._table = sa.table(metadata.table, *(sa.column(field.column) for field in metadata.fields.values()))
        self._select = sa.select(self._table)
        self._related: typing.Dict[str, Constraint] = {}

    @property
    def metadata(self) -> Metadata:
        return self._metadata

    @property
    def statement(self) -> sa.Select:
        return self._select

    def column(self, field: str) -> sa.ColumnClause:
        return self._table.c[self._metadata.get_column(field)]

    def where(self, *clauses: typing.Any, **equals: typing.Any) -> "QueryBuilder":
        criteria = list(clauses)
        criteria.extend(self.column(name) == types.to_storage(value) for name, value in equals.items())
        if criteria:
            self._select = self._select.where(*criteria)
        return self

    def where_in(self, field: str, values: typing.Iterable[typing.Any]) -> "QueryBuilder":
        self._select = self._select.where(self.column(field).in_([types.to_storage(value) for value in values]))
        return self

    def order_by(self, field: str, direction: str = "asc") -> "QueryBuilder":
        column = self.column(field)
        self._select = self._select.order_by(column.desc() if direction.lower() == "desc" else column.asc())
        return self

    def limit(self, limit: int) -> "QueryBuilder":
        self._select = self._select.limit(limit)
        return self

    def offset(self, offset: int) -> "QueryBuilder":
        self._select = self._select.offset(offset)
        return self

    def related(self, *names: str, **constraints: Constraint) -> "QueryBuilder":
        """Eager loads relations; a constraint receives the related query before it runs."""
        for name in names:
            self._related[name] = None
        self._related.update(constraints)
        return self

    def get(self) -> typing.List[typing.Any]:
        statement = self._manager.connection.execute(self._select)
        entities = self._manager.hydrate_all(statement, self._metadata)
        self._resolve_related(entities)
        return entities

    def first(self) -> typing.Optional[typing.Any]:
        statement = self._manager.connection.execute(self._select.limit(1))
        entity = self._manager.hydrate_one(statement, self._metadata)
        if entity is not None:
            self._resolve_related([entity])
        return entity

    def count(self) -> int:
        subquery = self._select.order_by(None).subquery()
        statement = self._manager.connection.execute(
            sa.select(sa.func.count().label("count")).select_from(subquery)
        )
        return statement.fetch()["count"]

    def _resolve_related(self, entities: typing.List[typing.Any]) -> None:
        if not entities:
            return

        for name, constraint in self._related.items():
            relation = self._metadata.get_relation(name)
            query = self._manager.get_repository(relation.target_class).query()
            if constraint:
                constraint(query)
            self._manager.related(entities, name, query)
