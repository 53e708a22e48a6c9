import logging
import os
import typing

import attr
from dotenv import load_dotenv


def _to_bool(value: typing.Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _to_optional(value: typing.Any) -> typing.Optional[str]:
    return value or None


@attr.s(auto_attribs=True, frozen=True)
class Settings:
    database_url: str = "sqlite://"
    echo: bool = attr.ib(default=False, converter=_to_bool)
    log_level: str = "WARNING"
    cookie_path: str = "/"
    cookie_domain: typing.Optional[str] = attr.ib(default=None, converter=_to_optional)
    csrf_name: str = "_csrf"

    @classmethod
    def from_env(cls, prefix: str = "MAPKIT_", env_file: typing.Optional[str] = None) -> "Settings":
        """Reads ``<prefix><FIELD>`` variables, after loading ``env_file`` (or a ``.env`` found upwards)."""
        load_dotenv(env_file)
        values = {}
        for field in attr.fields(cls):
            key = f"{prefix}{field.name.upper()}"
            if key in os.environ:
                values[field.name] = os.environ[key]
        return cls(**values)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
