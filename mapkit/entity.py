import abc
import typing

import attr

from mapkit.events import Events


class EntityWithoutIdentity(TypeError):
    pass


class MappingError(Exception):
    pass


class AmbiguousEntity(MappingError, LookupError):
    pass


T = typing.TypeVar("T")

MAPPING = "mapkit.mapping"
LIFECYCLE = "__lifecycle_events__"


class Identity(typing.Generic[T]):
    @classmethod
    def is_identity(cls, field: attr.Attribute) -> bool:
        return getattr(field.type, "__origin__", None) == cls


@attr.s(auto_attribs=True, frozen=True)
class EntityOptions:
    table: typing.Optional[str] = None
    event_prefix: str = ""
    repository_class: typing.Optional[typing.Type] = None
    mapped_superclass: bool = False


@attr.s(auto_attribs=True, frozen=True)
class ColumnMapping:
    name: typing.Optional[str] = None
    type: typing.Optional[str] = None


@attr.s(auto_attribs=True, frozen=True)
class RelationMapping:
    kind: str
    target: typing.Union[str, typing.Type]
    key_from: typing.Optional[str] = None
    key_to: typing.Optional[str] = None
    table_through: typing.Optional[str] = None
    key_through_from: typing.Optional[str] = None
    key_through_to: typing.Optional[str] = None
    order_by: typing.Dict[str, str] = attr.Factory(dict)


TRANSIENT = object()


class EntityMeta(abc.ABCMeta):
    # "module.qualname" -> entity class, lets relations name targets declared later
    registry: typing.Dict[str, typing.Type] = {}

    def __new__(
        mcs,
        name: str,
        bases: tuple,
        namespace: dict,
        table: typing.Optional[str] = None,
        event_prefix: str = "",
        repository_class: typing.Optional[typing.Type] = None,
        mapped_superclass: bool = False,
    ):
        cls = super().__new__(mcs, name, bases, namespace)
        if name == "Entity" and namespace.get("__module__") == __name__:
            return cls
        cls.__entity__ = EntityOptions(table, event_prefix, repository_class, mapped_superclass)
        attr_cls = attr.s(auto_attribs=True)(cls)
        if not mapped_superclass and not any(Identity.is_identity(field) for field in attr.fields(attr_cls)):
            raise EntityWithoutIdentity(name)
        mcs.registry[f"{attr_cls.__module__}.{attr_cls.__qualname__}"] = attr_cls
        return attr_cls

    def __init__(cls, name: str, bases: tuple, namespace: dict, **kwargs: typing.Any) -> None:
        super().__init__(name, bases, namespace)


class Entity(metaclass=EntityMeta):
    pass


def resolve_entity(target: typing.Union[str, typing.Type], module: typing.Optional[str] = None) -> typing.Type:
    """Finds an entity class by ``module.qualname``, by qualname inside ``module`` or by an unambiguous name."""
    if not isinstance(target, str):
        return target

    registry = EntityMeta.registry
    if target in registry:
        return registry[target]
    if module is not None and f"{module}.{target}" in registry:
        return registry[f"{module}.{target}"]

    matches = sorted(key for key, cls in registry.items() if target in (cls.__name__, cls.__qualname__))
    if len(matches) > 1:
        raise AmbiguousEntity(f"Entity name {target} is ambiguous, use one of: {', '.join(matches)}")
    if not matches:
        raise LookupError(f"Unknown entity class - {target}")
    return registry[matches[0]]


def column(
    name: typing.Optional[str] = None, type: typing.Optional[str] = None, default: typing.Any = None
) -> typing.Any:
    return attr.ib(default=default, metadata={MAPPING: ColumnMapping(name, type)})


def transient(default: typing.Any = None) -> typing.Any:
    return attr.ib(default=default, metadata={MAPPING: TRANSIENT})


def _relation(mapping: RelationMapping, default: typing.Any) -> typing.Any:
    return attr.ib(default=default, eq=False, repr=False, metadata={MAPPING: mapping})


def belongs_to(target, key_from: typing.Optional[str] = None, key_to: typing.Optional[str] = None) -> typing.Any:
    return _relation(RelationMapping("belongs_to", target, key_from, key_to), None)


def has_one(target, key_to: str, key_from: typing.Optional[str] = None) -> typing.Any:
    return _relation(RelationMapping("has_one", target, key_from, key_to), None)


def has_many(
    target, key_to: str, key_from: typing.Optional[str] = None, order_by: typing.Optional[typing.Dict[str, str]] = None
) -> typing.Any:
    return _relation(
        RelationMapping("has_many", target, key_from, key_to, order_by=order_by or {}), attr.Factory(list)
    )


def many_to_many(
    target,
    table_through: str,
    key_through_from: str,
    key_through_to: str,
    key_from: typing.Optional[str] = None,
    key_to: typing.Optional[str] = None,
    order_by: typing.Optional[typing.Dict[str, str]] = None,
) -> typing.Any:
    mapping = RelationMapping(
        "many_to_many", target, key_from, key_to, table_through, key_through_from, key_through_to, order_by or {}
    )
    return _relation(mapping, attr.Factory(list))


def listens_to(*phases: str) -> typing.Callable:
    """Marks an entity method as a callback for the given lifecycle phases.

    The method is called with the :class:`mapkit.events.EntityEvent` of the operation.
    """

    def decorator(method: typing.Callable) -> typing.Callable:
        setattr(method, LIFECYCLE, tuple(getattr(method, LIFECYCLE, ())) + phases)
        return method

    return decorator


pre_save = listens_to(Events.PRE_SAVE)
post_save = listens_to(Events.POST_SAVE)
pre_create = listens_to(Events.PRE_CREATE)
post_create = listens_to(Events.POST_CREATE)
pre_update = listens_to(Events.PRE_UPDATE)
post_update = listens_to(Events.POST_UPDATE)
pre_delete = listens_to(Events.PRE_DELETE)
post_delete = listens_to(Events.POST_DELETE)
post_load = listens_to(Events.POST_LOAD)
