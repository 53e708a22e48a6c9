import enum
import json
import typing
import uuid
from datetime import date, datetime
from functools import singledispatch

from mapkit.entity import Identity


@singledispatch
def to_storage(argument: typing.Any) -> typing.Any:
    return argument


@to_storage.register(uuid.UUID)
def _(argument: uuid.UUID) -> str:
    return str(argument)


@to_storage.register(enum.Enum)
def _(argument: enum.Enum) -> typing.Any:
    return argument.value


@to_storage.register(date)
def _(argument: date) -> str:
    # datetime is a date subclass, isoformat covers both
    return argument.isoformat()


@to_storage.register(dict)
@to_storage.register(list)
def _(argument: typing.Union[dict, list]) -> str:
    return json.dumps(argument)


def _to_datetime(value: typing.Any) -> datetime:
    return value if isinstance(value, datetime) else datetime.fromisoformat(value)


def _to_date(value: typing.Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value if isinstance(value, date) else date.fromisoformat(value)


def _to_json(value: typing.Any) -> typing.Any:
    return json.loads(value) if isinstance(value, (str, bytes)) else value


mapping = {
    "integer": int,
    "string": str,
    "text": str,
    "float": float,
    "boolean": bool,
    "datetime": _to_datetime,
    "date": _to_date,
    "uuid": lambda value: value if isinstance(value, uuid.UUID) else uuid.UUID(str(value)),
    "json": _to_json,
}


def from_storage(argument: typing.Any, field_type: str) -> typing.Any:
    if argument is None:
        return None
    try:
        return mapping[field_type](argument)
    except KeyError:
        return argument


native_types = {
    int: "integer",
    str: "string",
    float: "float",
    bool: "boolean",
    datetime: "datetime",
    date: "date",
    uuid.UUID: "uuid",
    dict: "json",
    list: "json",
}


def type_name(annotation: typing.Any) -> str:
    """Maps a field annotation onto a storage type name, unwrapping ``Identity`` and ``Optional``."""
    origin = getattr(annotation, "__origin__", None)
    if origin is Identity or origin is typing.Union:
        args = [arg for arg in annotation.__args__ if arg is not type(None)]
        return type_name(args[0]) if args else "string"
    if origin in native_types:
        return native_types[origin]
    return native_types.get(annotation, "string")
