import abc
import hmac
import logging
import secrets
import typing

import attr

from mapkit.auth import SessionInterface
from mapkit.config import Settings
from mapkit.events import Event


logger = logging.getLogger(__name__)


class BadTokenException(Exception):
    def __init__(self, status_code: int = 401, message: str = "Invalid CSRF token.") -> None:
        super().__init__(message)
        self.status_code = status_code


class CsrfProvider(abc.ABC):
    @abc.abstractmethod
    def generate(self) -> str:
        pass

    @abc.abstractmethod
    def validate(self, token: typing.Optional[str]) -> bool:
        pass


class SessionCsrfProvider(CsrfProvider):
    """Keeps one random token per session."""

    def __init__(self, session: SessionInterface, name: str = "_csrf") -> None:
        self._session = session
        self._name = name

    @classmethod
    def from_settings(cls, session: SessionInterface, settings: Settings) -> "SessionCsrfProvider":
        return cls(session, settings.csrf_name)

    def generate(self) -> str:
        token = self._session.get(self._name)
        if not token:
            token = secrets.token_hex(20)
            self._session.set(self._name, token)
        return token

    def validate(self, token: typing.Optional[str]) -> bool:
        expected = self._session.get(self._name)
        if not expected or not token:
            return False
        return hmac.compare_digest(str(expected), str(token))


@attr.s(auto_attribs=True, eq=False)
class RequestEvent(Event):
    """``request`` exposes ``attributes`` (routing options) and ``params`` (submitted values) mappings."""

    request: typing.Any


class CsrfListener:
    def __init__(self, provider: CsrfProvider, attribute: str = "_csrf") -> None:
        self._provider = provider
        self._attribute = attribute

    def on_request(self, event: RequestEvent) -> None:
        request = event.request

        csrf = request.attributes.get(self._attribute, False)
        if not csrf:
            return

        param = csrf if isinstance(csrf, str) else self._attribute
        if not self._provider.validate(request.params.get(param)):
            logger.warning("Rejected request with invalid CSRF token in %r", param)
            raise BadTokenException(401, "Invalid CSRF token.")

    @staticmethod
    def get_subscribed_events() -> typing.Dict[str, typing.Tuple[str, int]]:
        return {"kernel.request": ("on_request", -10)}
