import abc
import hashlib
import logging
import typing

import attr

from mapkit.events import Event, EventDispatcher


logger = logging.getLogger(__name__)


class AuthEvents:
    PRE_AUTHENTICATE = "auth.pre_authenticate"
    SUCCESS = "auth.success"
    FAILURE = "auth.failure"
    AUTHORIZE = "auth.authorize"
    LOGIN = "auth.login"
    LOGOUT = "auth.logout"


class AuthException(Exception):
    pass


class BadCredentialsException(AuthException):
    def __init__(self, credentials: typing.Mapping[str, typing.Any]) -> None:
        super().__init__("Invalid credentials.")
        self.credentials = {key: value for key, value in credentials.items() if key != "password"}


class UserInterface(abc.ABC):
    @abc.abstractmethod
    def get_id(self) -> typing.Any:
        pass

    @abc.abstractmethod
    def get_username(self) -> str:
        pass


class UserProvider(abc.ABC):
    @abc.abstractmethod
    def find(self, identifier: typing.Any) -> typing.Optional[typing.Any]:
        pass

    @abc.abstractmethod
    def find_by_credentials(self, credentials: typing.Mapping[str, typing.Any]) -> typing.Optional[typing.Any]:
        pass

    @abc.abstractmethod
    def validate_credentials(self, user: typing.Any, credentials: typing.Mapping[str, typing.Any]) -> bool:
        pass


class SessionInterface(abc.ABC):
    @abc.abstractmethod
    def get(self, name: str, default: typing.Any = None) -> typing.Any:
        pass

    @abc.abstractmethod
    def set(self, name: str, value: typing.Any) -> None:
        pass

    @abc.abstractmethod
    def remove(self, name: str) -> None:
        pass

    @abc.abstractmethod
    def migrate(self) -> None:
        """Renews the session id, keeping its values."""

    @abc.abstractmethod
    def invalidate(self) -> None:
        """Drops all values and renews the session id."""


class RepositoryUserProvider(UserProvider):
    """Loads users through an entity repository; password checking is left to ``password_checker``."""

    def __init__(
        self,
        repository: typing.Any,
        password_checker: typing.Callable[[typing.Any, str], bool],
        username_field: str = "username",
    ) -> None:
        self._repository = repository
        self._password_checker = password_checker
        self._username_field = username_field

    def find(self, identifier: typing.Any) -> typing.Optional[typing.Any]:
        return self._repository.find(identifier)

    def find_by_credentials(self, credentials: typing.Mapping[str, typing.Any]) -> typing.Optional[typing.Any]:
        username = credentials.get(Auth.USERNAME_PARAM)
        if not username:
            return None
        return self._repository.find_one_by(**{self._username_field: username})

    def validate_credentials(self, user: typing.Any, credentials: typing.Mapping[str, typing.Any]) -> bool:
        return bool(self._password_checker(user, credentials.get("password", "")))


@attr.s(auto_attribs=True, eq=False)
class AuthenticateEvent(Event):
    credentials: typing.Mapping[str, typing.Any]
    user: typing.Any = None


@attr.s(auto_attribs=True, eq=False)
class AuthorizeEvent(Event):
    user: typing.Any


@attr.s(auto_attribs=True, eq=False)
class LoginEvent(Event):
    user: typing.Any
    response: typing.Any = None


@attr.s(auto_attribs=True, eq=False)
class LogoutEvent(Event):
    user: typing.Any
    response: typing.Any = None


class Auth:
    USERNAME_PARAM = "username"
    REDIRECT_PARAM = "redirect"
    LAST_USERNAME = "_auth.last_username"

    def __init__(self, events: EventDispatcher, session: typing.Optional[SessionInterface] = None) -> None:
        self._events = events
        self._session = session
        self._user: typing.Any = None
        self._provider: typing.Optional[UserProvider] = None
        self._token: typing.Any = None

    def get_name(self, var: str = "user") -> str:
        cls = type(self)
        digest = hashlib.sha1(f"{cls.__module__}.{cls.__qualname__}".encode()).hexdigest()
        return f"_auth.{var}_{digest}"

    @property
    def session(self) -> typing.Optional[SessionInterface]:
        return self._session

    @session.setter
    def session(self, session: SessionInterface) -> None:
        self._session = session

    @property
    def user_provider(self) -> UserProvider:
        if self._provider is None:
            raise RuntimeError("Accessed user provider prior to registering it.")
        return self._provider

    @user_provider.setter
    def user_provider(self, provider: UserProvider) -> None:
        self._provider = provider

    @property
    def user(self) -> typing.Any:
        return self.get_user()

    def get_user(self) -> typing.Any:
        if self._user is not None:
            return self._user

        user = self._session.get(self.get_name()) if self._session is not None else None
        if user is not None:
            if self._token != self._session.get(self.get_name("token")):
                user = self.user_provider.find(user.get_id())
                self._session.set(self.get_name(), user)
                self._session.set(self.get_name("token"), self._token)

            self._user = user

        return self._user

    def set_user(self, user: typing.Any) -> None:
        self._session.set(self.get_name(), user)
        self._session.set(self.get_name("token"), self._token)
        self._user = user

    def authenticate(self, credentials: typing.Mapping[str, typing.Any]) -> typing.Any:
        self._events.dispatch(AuthEvents.PRE_AUTHENTICATE, AuthenticateEvent(credentials))

        provider = self.user_provider
        user = provider.find_by_credentials(credentials)
        if user is None or not provider.validate_credentials(user, credentials):
            self._session.set(self.LAST_USERNAME, credentials.get(self.USERNAME_PARAM))
            self._events.dispatch(AuthEvents.FAILURE, AuthenticateEvent(credentials, user))
            logger.warning("Authentication failed for %r", credentials.get(self.USERNAME_PARAM))
            raise BadCredentialsException(credentials)

        self._events.dispatch(AuthEvents.SUCCESS, AuthenticateEvent(credentials, user))
        self._session.remove(self.LAST_USERNAME)

        return user

    def authorize(self, user: typing.Any) -> None:
        """Listeners veto by raising :class:`AuthException`."""
        self._events.dispatch(AuthEvents.AUTHORIZE, AuthorizeEvent(user))

    def login(self, user: typing.Any) -> typing.Any:
        self._session.migrate()
        self.set_user(user)

        event = self._events.dispatch(AuthEvents.LOGIN, LoginEvent(user))
        logger.info("User %r logged in", user.get_username())
        return event.response

    def logout(self) -> typing.Any:
        event = self._events.dispatch(AuthEvents.LOGOUT, LogoutEvent(self._user))
        logger.info("User %r logged out", self._user.get_username() if self._user is not None else None)

        self._user = None
        self._session.invalidate()

        return event.response

    def refresh(self, token: typing.Any = None) -> None:
        """Sets the token that decides when the session user is reloaded from the provider."""
        self._token = token
