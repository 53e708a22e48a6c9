import enum
import typing
import uuid
from datetime import date, datetime

import pytest

from mapkit.entity import Identity
from mapkit.types import from_storage, to_storage, type_name


class Color(enum.Enum):
    RED = "red"


SOME_UUID = uuid.UUID("12345678-1234-5678-1234-567812345678")


@pytest.mark.parametrize(
    "value, expected",
    [
        (1, 1),
        ("text", "text"),
        (None, None),
        (SOME_UUID, "12345678-1234-5678-1234-567812345678"),
        (Color.RED, "red"),
        (datetime(2020, 1, 1, 12, 30), "2020-01-01T12:30:00"),
        (date(2020, 1, 2), "2020-01-02"),
        ({"a": [1, 2]}, '{"a": [1, 2]}'),
    ],
)
def test_converts_to_storage(value: typing.Any, expected: typing.Any) -> None:
    assert to_storage(value) == expected


@pytest.mark.parametrize(
    "value, field_type, expected",
    [
        ("1", "integer", 1),
        (1, "boolean", True),
        ("2020-01-01T12:30:00", "datetime", datetime(2020, 1, 1, 12, 30)),
        ("2020-01-02", "date", date(2020, 1, 2)),
        ("12345678-1234-5678-1234-567812345678", "uuid", SOME_UUID),
        ('{"a": [1, 2]}', "json", {"a": [1, 2]}),
        (None, "integer", None),
        ("raw", "unknown", "raw"),
    ],
)
def test_converts_from_storage(value: typing.Any, field_type: str, expected: typing.Any) -> None:
    assert from_storage(value, field_type) == expected


@pytest.mark.parametrize(
    "annotation, expected",
    [
        (int, "integer"),
        (Identity[int], "integer"),
        (Identity[uuid.UUID], "uuid"),
        (typing.Optional[datetime], "datetime"),
        (typing.List[int], "json"),
        ("Forward", "string"),
    ],
)
def test_derives_type_names_from_annotations(annotation: typing.Any, expected: str) -> None:
    assert type_name(annotation) == expected
