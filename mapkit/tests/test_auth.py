import typing

import pytest

from mapkit.auth import (
    Auth,
    AuthEvents,
    AuthException,
    BadCredentialsException,
    RepositoryUserProvider,
    SessionInterface,
    UserInterface,
    UserProvider,
)
from mapkit.events import Event, EventDispatcher


class StubUser(UserInterface):
    def __init__(self, id: int, username: str, password: str = "secret") -> None:
        self.id = id
        self.username = username
        self.password = password

    def get_id(self) -> int:
        return self.id

    def get_username(self) -> str:
        return self.username


class StubProvider(UserProvider):
    def __init__(self, *users: StubUser) -> None:
        self.users = {user.id: user for user in users}

    def find(self, identifier):
        return self.users.get(identifier)

    def find_by_credentials(self, credentials):
        return next((u for u in self.users.values() if u.username == credentials.get("username")), None)

    def validate_credentials(self, user, credentials):
        return user.password == credentials.get("password")


@pytest.fixture()
def ann() -> StubUser:
    return StubUser(1, "ann")


@pytest.fixture()
def auth(events: EventDispatcher, session: SessionInterface, ann: StubUser) -> Auth:
    auth = Auth(events, session)
    auth.user_provider = StubProvider(ann)
    return auth


@pytest.fixture()
def dispatched(events: EventDispatcher) -> typing.List[typing.Tuple[str, Event]]:
    names: typing.List[typing.Tuple[str, Event]] = []
    for name in (
        AuthEvents.PRE_AUTHENTICATE,
        AuthEvents.SUCCESS,
        AuthEvents.FAILURE,
        AuthEvents.AUTHORIZE,
        AuthEvents.LOGIN,
        AuthEvents.LOGOUT,
    ):
        events.add_listener(name, lambda event, name=name: names.append((name, event)))
    return names


def test_user_provider_must_be_registered(events: EventDispatcher) -> None:
    with pytest.raises(RuntimeError):
        Auth(events).user_provider


def test_session_names_are_scoped_to_auth_class(auth: Auth) -> None:
    class OtherAuth(Auth):
        pass

    assert auth.get_name().startswith("_auth.user_")
    assert auth.get_name("token").startswith("_auth.token_")
    assert OtherAuth(EventDispatcher()).get_name() != auth.get_name()


def test_authenticates_valid_credentials(auth: Auth, ann: StubUser, session: SessionInterface, dispatched) -> None:
    session.set(Auth.LAST_USERNAME, "ann")

    assert auth.authenticate({"username": "ann", "password": "secret"}) is ann
    assert [name for name, _ in dispatched] == [AuthEvents.PRE_AUTHENTICATE, AuthEvents.SUCCESS]
    assert dispatched[1][1].user is ann
    assert session.get(Auth.LAST_USERNAME) is None


@pytest.mark.parametrize(
    "credentials", [{"username": "ann", "password": "wrong"}, {"username": "bob", "password": "secret"}]
)
def test_rejects_bad_credentials(auth: Auth, session: SessionInterface, dispatched, credentials: dict) -> None:
    with pytest.raises(BadCredentialsException) as error:
        auth.authenticate(credentials)

    assert isinstance(error.value, AuthException)
    assert "password" not in error.value.credentials
    assert session.get(Auth.LAST_USERNAME) == credentials["username"]
    assert [name for name, _ in dispatched] == [AuthEvents.PRE_AUTHENTICATE, AuthEvents.FAILURE]


def test_authorize_lets_listeners_veto(auth: Auth, ann: StubUser, events: EventDispatcher) -> None:
    def veto(event: Event) -> None:
        raise AuthException("Blocked")

    auth.authorize(ann)
    events.add_listener(AuthEvents.AUTHORIZE, veto)

    with pytest.raises(AuthException, match="Blocked"):
        auth.authorize(ann)


def test_login_stores_user_and_returns_listener_response(
    auth: Auth, ann: StubUser, session: SessionInterface, events: EventDispatcher
) -> None:
    events.add_listener(AuthEvents.LOGIN, lambda event: setattr(event, "response", "redirect:/"))

    assert auth.login(ann) == "redirect:/"
    assert session.migrations == 1
    assert session.get(auth.get_name()) is ann
    assert auth.user is ann


def test_logout_forgets_user_and_invalidates_session(
    auth: Auth, ann: StubUser, session: SessionInterface, dispatched
) -> None:
    auth.login(ann)

    assert auth.logout() is None
    assert dispatched[-1][0] == AuthEvents.LOGOUT
    assert dispatched[-1][1].user is ann
    assert session.invalidations == 1
    assert auth.user is None


def test_reads_user_from_session(events: EventDispatcher, session: SessionInterface, ann: StubUser) -> None:
    Auth(events, session).set_user(ann)

    fresh = Auth(events, session)
    fresh.user_provider = StubProvider()

    assert fresh.get_user() is ann


def test_reloads_session_user_when_refresh_token_changes(
    events: EventDispatcher, session: SessionInterface, ann: StubUser
) -> None:
    Auth(events, session).set_user(ann)
    reloaded = StubUser(1, "ann (reloaded)")

    fresh = Auth(events, session)
    fresh.user_provider = StubProvider(reloaded)
    fresh.refresh("new-token")

    assert fresh.get_user() is reloaded
    assert session.get(fresh.get_name("token")) == "new-token"


def test_repository_user_provider_checks_password() -> None:
    class FakeRepository:
        def __init__(self, user: StubUser) -> None:
            self.user = user

        def find(self, identifier):
            return self.user if identifier == self.user.id else None

        def find_one_by(self, **criteria):
            return self.user if criteria == {"username": self.user.username} else None

    user = StubUser(3, "cid", "pw")
    provider = RepositoryUserProvider(FakeRepository(user), lambda u, password: u.password == password)

    assert provider.find(3) is user
    assert provider.find_by_credentials({"username": "cid"}) is user
    assert provider.find_by_credentials({}) is None
    assert provider.validate_credentials(user, {"password": "pw"})
    assert not provider.validate_credentials(user, {"password": "nope"})
