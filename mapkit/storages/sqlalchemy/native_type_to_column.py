import typing

from sqlalchemy import Boolean, Date, DateTime, Float, Integer, String, Text


# field type name -> column type; uuid and json are kept as text to stay dialect neutral
mapping = {
    "integer": Integer,
    "string": String(255),
    "text": Text,
    "float": Float,
    "boolean": Boolean,
    "datetime": DateTime,
    "date": Date,
    "uuid": String(36),
    "json": Text,
}


def convert(arg: str) -> typing.Any:
    try:
        return mapping[arg]
    except KeyError:
        raise TypeError(f"Unsupported type - {arg}")
