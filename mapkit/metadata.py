import enum
import typing
from types import MappingProxyType

import attr

from mapkit import types
from mapkit.entity import MappingError, resolve_entity
from mapkit.events import Events


class UnknownRelation(MappingError, LookupError):
    pass


class RelationResolverNotFound(MappingError, LookupError):
    pass


class RelationKind(enum.Enum):
    BELONGS_TO = "belongs_to"
    HAS_ONE = "has_one"
    HAS_MANY = "has_many"
    MANY_TO_MANY = "many_to_many"

    @property
    def is_many(self) -> bool:
        return self in (RelationKind.HAS_MANY, RelationKind.MANY_TO_MANY)


@attr.s(auto_attribs=True, frozen=True)
class Field:
    name: str
    column: str
    type: str = "string"
    is_identifier: bool = False


@attr.s(auto_attribs=True, frozen=True)
class Relation:
    name: str
    kind: RelationKind
    target: typing.Union[str, typing.Type]
    resolver: typing.Type
    key_from: typing.Optional[str] = None
    key_to: typing.Optional[str] = None
    table_through: typing.Optional[str] = None
    key_through_from: typing.Optional[str] = None
    key_through_to: typing.Optional[str] = None
    order_by: typing.Tuple[typing.Tuple[str, str], ...] = ()
    # module of the declaring class, bare target names resolve there first
    module: typing.Optional[str] = None

    @property
    def target_class(self) -> typing.Type:
        return resolve_entity(self.target, self.module)


def _is_empty(value: typing.Any) -> bool:
    return value is None or value == ""


def _read_only(value: typing.Mapping) -> typing.Mapping:
    return MappingProxyType(dict(value))


@attr.s(auto_attribs=True, frozen=True)
class Metadata:
    """Mapping of one entity class onto its table, built once from loader output and never changed."""

    cls: typing.Type
    table: typing.Optional[str]
    identifier: typing.Optional[str]
    fields: typing.Mapping[str, Field] = attr.ib(converter=_read_only)
    relations: typing.Mapping[str, Relation] = attr.ib(converter=_read_only)
    events: typing.Mapping[str, typing.Tuple[str, ...]] = attr.ib(converter=_read_only)
    event_prefix: str = ""
    repository_class: typing.Optional[typing.Type] = None
    is_mapped_superclass: bool = False

    @classmethod
    def from_config(cls, entity_cls: typing.Type, config: typing.Mapping[str, typing.Any]) -> "Metadata":
        from mapkit.relations import RESOLVERS
        from mapkit.repository import Repository

        is_mapped_superclass = bool(config.get("is_mapped_superclass"))

        fields: typing.Dict[str, Field] = {}
        columns: typing.Set[str] = set()
        for name, field in config.get("fields", {}).items():
            column = field.get("column") or name
            if column in columns:
                raise MappingError(
                    f'Duplicate column mapping detected, "{column}" already exists in {entity_cls.__name__}.'
                )
            columns.add(column)
            fields[name] = Field(name, column, field.get("type") or "string", bool(field.get("id")))

        identifiers = [field.name for field in fields.values() if field.is_identifier]
        if len(identifiers) > 1 or (not identifiers and not is_mapped_superclass):
            raise MappingError(f"Entity {entity_cls.__name__} must map exactly one identifier, got {identifiers}.")
        identifier = identifiers[0] if identifiers else None

        relations: typing.Dict[str, Relation] = {}
        for name, relation in config.get("relations", {}).items():
            try:
                kind = RelationKind(relation.get("type"))
                resolver = RESOLVERS[kind]
            except (ValueError, KeyError):
                raise RelationResolverNotFound(
                    f"Unable to find relation resolver '{relation.get('type')}' for {entity_cls.__name__}.{name}"
                )
            relations[name] = _build_relation(entity_cls, name, kind, resolver, fields, identifier, relation)

        events: typing.Dict[str, typing.Tuple[str, ...]] = {}
        for phase, callbacks in config.get("events", {}).items():
            if phase not in Events.ALL:
                raise MappingError(f"Unknown lifecycle event '{phase}' in {entity_cls.__name__}.")
            events[phase] = tuple(callbacks)

        repository_class = config.get("repository_class")
        if repository_class is not None and not (
            isinstance(repository_class, type) and issubclass(repository_class, Repository)
        ):
            raise MappingError(f"Repository class of {entity_cls.__name__} must extend Repository.")

        return cls(
            entity_cls,
            config.get("table"),
            identifier,
            fields,
            relations,
            events,
            config.get("event_prefix") or "",
            repository_class,
            is_mapped_superclass,
        )

    def get_identifier(self, column: bool = False) -> typing.Optional[str]:
        if column and self.identifier:
            return self.fields[self.identifier].column
        return self.identifier

    def get_field(self, name: str) -> Field:
        try:
            return self.fields[name]
        except KeyError:
            raise MappingError(f"Unknown field '{name}' in {self.cls.__name__}.")

    def get_column(self, name: str) -> str:
        return self.get_field(name).column

    def get_relation(self, name: str) -> Relation:
        try:
            return self.relations[name]
        except KeyError:
            raise UnknownRelation(f"Unknown relation '{name}' in {self.cls.__name__}.")

    def get_value(self, entity: typing.Any, name: str) -> typing.Any:
        return getattr(entity, name, None)

    def set_value(self, entity: typing.Any, name: str, value: typing.Any) -> None:
        setattr(entity, name, value)

    def set_values(self, entity: typing.Any, data: typing.Mapping[str, typing.Any]) -> None:
        for name, value in data.items():
            if name in self.fields:
                self.set_value(entity, name, value)

    def get_values(self, entity: typing.Any) -> typing.Dict[str, typing.Any]:
        """Column -> storage value of every mapped field."""
        return {
            field.column: types.to_storage(self.get_value(entity, field.name)) for field in self.fields.values()
        }

    def identifier_value(self, entity: typing.Any) -> typing.Any:
        value = self.get_value(entity, self.identifier)
        return None if _is_empty(value) else value

    def convert_identifier(self, value: typing.Any) -> typing.Any:
        """Converts an identifier to its field type, the form identity map keys take."""
        return types.from_storage(value, self.fields[self.identifier].type)

    def identifier_from_row(self, row: typing.Mapping[str, typing.Any]) -> typing.Any:
        return self.convert_identifier(row.get(self.get_identifier(column=True)))

    def new_instance(self) -> typing.Any:
        entity = self.cls.__new__(self.cls)
        for attribute in attr.fields(self.cls):
            default = attribute.default
            if isinstance(default, attr.Factory):
                value = default.factory(entity) if default.takes_self else default.factory()
            elif default is attr.NOTHING:
                value = None
            else:
                value = default
            setattr(entity, attribute.name, value)
        return entity

    def hydrate(self, entity: typing.Any, row: typing.Mapping[str, typing.Any]) -> None:
        for field in self.fields.values():
            if field.column in row:
                self.set_value(entity, field.name, types.from_storage(row[field.column], field.type))


def _build_relation(
    entity_cls: typing.Type,
    name: str,
    kind: RelationKind,
    resolver: typing.Type,
    fields: typing.Mapping[str, Field],
    identifier: typing.Optional[str],
    relation: typing.Mapping[str, typing.Any],
) -> Relation:
    path = f"{entity_cls.__name__}.{name}"
    if "target" not in relation:
        raise MappingError(f"Relation {path} requires 'target'.")

    key_from = relation.get("key_from")
    key_to = relation.get("key_to")

    if kind is RelationKind.BELONGS_TO:
        key_from = key_from or f"{name}_id"
    else:
        key_from = key_from or identifier

    if kind in (RelationKind.HAS_ONE, RelationKind.HAS_MANY) and not key_to:
        raise MappingError(f"Relation {path} requires 'key_to'.")

    if kind is RelationKind.MANY_TO_MANY and not all(
        relation.get(key) for key in ("table_through", "key_through_from", "key_through_to")
    ):
        raise MappingError(f"Relation {path} requires 'table_through', 'key_through_from' and 'key_through_to'.")

    if key_from not in fields:
        raise MappingError(f"Relation {path} reads its key from '{key_from}', which is not a mapped field.")

    order_by: typing.Tuple[typing.Tuple[str, str], ...] = ()
    if kind.is_many:
        order_by = tuple(
            (field, direction.lower()) for field, direction in (relation.get("order_by") or {}).items()
        )

    return Relation(
        name=name,
        kind=kind,
        target=relation["target"],
        resolver=resolver,
        key_from=key_from,
        key_to=key_to,
        table_through=relation.get("table_through"),
        key_through_from=relation.get("key_through_from"),
        key_through_to=relation.get("key_through_to"),
        order_by=order_by,
        module=entity_cls.__module__,
    )
