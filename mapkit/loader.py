import abc
import copy
import typing

import attr
import inflection

from mapkit import types
from mapkit.entity import LIFECYCLE, MAPPING, TRANSIENT, EntityMeta, Identity, RelationMapping
from mapkit.metadata import MappingError


Config = typing.Dict[str, typing.Any]


class Loader(abc.ABC):
    @abc.abstractmethod
    def load(self, cls: typing.Type, config: typing.Optional[Config] = None) -> Config:
        """Extends ``config`` with the mapping declared on ``cls``; fails if ``cls`` is not an entity."""

    @abc.abstractmethod
    def is_transient(self, cls: typing.Type) -> bool:
        pass


def _prepare(config: typing.Optional[Config]) -> Config:
    config = copy.deepcopy(config) if config else {}
    for key in ("fields", "relations", "events"):
        config.setdefault(key, {})
    return config


def _is_inherited(config: Config, name: str) -> bool:
    return config["fields"].get(name, {}).get("inherited") or config["relations"].get(name, {}).get("inherited")


def _add_event(config: Config, phase: str, callback: str) -> None:
    callbacks = config["events"].setdefault(phase, [])
    if callback not in callbacks:
        callbacks.append(callback)


class AttributeLoader(Loader):
    """Reads the mapping from classes declared through :class:`mapkit.entity.Entity`."""

    def is_transient(self, cls: typing.Type) -> bool:
        return not isinstance(cls, EntityMeta) or "__entity__" not in vars(cls)

    def load(self, cls: typing.Type, config: typing.Optional[Config] = None) -> Config:
        if self.is_transient(cls):
            raise MappingError(f"No entity marker found for class {cls.__module__}.{cls.__qualname__}")

        config = _prepare(config)
        options = vars(cls)["__entity__"]

        if options.mapped_superclass:
            config["is_mapped_superclass"] = True
        else:
            config["is_mapped_superclass"] = False
            config["table"] = options.table or inflection.pluralize(inflection.underscore(cls.__name__))
            config["event_prefix"] = options.event_prefix
        config["repository_class"] = options.repository_class

        for field in attr.fields(cls):
            name = field.name
            if _is_inherited(config, name):
                continue

            mapping = field.metadata.get(MAPPING)
            if mapping is TRANSIENT:
                continue

            if name in config["fields"] or name in config["relations"]:
                raise MappingError(f'Duplicate mapping detected, "{name}" already exists.')

            if isinstance(mapping, RelationMapping):
                config["relations"][name] = {
                    "name": name,
                    "type": mapping.kind,
                    "target": mapping.target,
                    "key_from": mapping.key_from,
                    "key_to": mapping.key_to,
                    "table_through": mapping.table_through,
                    "key_through_from": mapping.key_through_from,
                    "key_through_to": mapping.key_through_to,
                    "order_by": dict(mapping.order_by),
                }
                continue

            config["fields"][name] = {
                "name": name,
                "column": mapping.name if mapping and mapping.name else name,
                "type": mapping.type if mapping and mapping.type else types.type_name(field.type),
                "id": Identity.is_identity(field),
            }

        # only callbacks declared on this very class, parents contribute their own
        for name, member in vars(cls).items():
            for phase in getattr(member, LIFECYCLE, ()):
                _add_event(config, phase, name)

        return config


class ConfigLoader(Loader):
    """Reads the mapping from plain mappings, keyed by class or class name.

    Each mapping looks like::

        {
            "table": "users",
            "event_prefix": "user",
            "fields": [{"name": "id", "id": True, "type": "integer"}, {"name": "name", "column": "user_name"}],
            "relations": [{"name": "posts", "type": "has_many", "target": "Post", "key_to": "user_id"}],
            "events": {"pre_save": ["touch"]},
        }
    """

    def __init__(self, mappings: typing.Mapping[typing.Union[str, typing.Type], typing.Mapping]) -> None:
        self._mappings = mappings

    def _mapping_for(self, cls: typing.Type) -> typing.Optional[typing.Mapping]:
        for key in (cls, f"{cls.__module__}.{cls.__qualname__}", cls.__name__):
            if key in self._mappings:
                return self._mappings[key]
        return None

    def is_transient(self, cls: typing.Type) -> bool:
        return self._mapping_for(cls) is None

    def load(self, cls: typing.Type, config: typing.Optional[Config] = None) -> Config:
        mapping = self._mapping_for(cls)
        if mapping is None:
            raise MappingError(f"No entity marker found for class {cls.__module__}.{cls.__qualname__}")

        config = _prepare(config)
        config["is_mapped_superclass"] = bool(mapping.get("mapped_superclass"))
        if not config["is_mapped_superclass"]:
            config["table"] = mapping.get("table") or inflection.pluralize(inflection.underscore(cls.__name__))
            config["event_prefix"] = mapping.get("event_prefix", "")
        config["repository_class"] = mapping.get("repository_class")

        for field in mapping.get("fields", []):
            name = field["name"]
            if name in config["fields"] or name in config["relations"]:
                raise MappingError(f'Duplicate field mapping detected, "{name}" already exists.')
            config["fields"][name] = {
                "name": name,
                "column": field.get("column", name),
                "type": field.get("type", "string"),
                "id": bool(field.get("id")),
            }

        for relation in mapping.get("relations", []):
            name = relation["name"]
            if name in config["fields"] or name in config["relations"]:
                raise MappingError(f'Duplicate relation mapping detected, "{name}" already exists.')
            config["relations"][name] = dict(relation)

        for phase, callbacks in mapping.get("events", {}).items():
            for callback in callbacks:
                _add_event(config, phase, callback)

        return config
