import typing

import attr

from mapkit.config import Settings


@attr.s(auto_attribs=True, frozen=True)
class Cookie:
    name: str
    value: typing.Optional[str] = None
    expire: int = 0
    path: str = "/"
    domain: typing.Optional[str] = None
    secure: bool = False
    http_only: bool = True

    @property
    def is_cleared(self) -> bool:
        return self.value is None and self.expire == 1


class CookieJar:
    """Reads request cookies and queues the ones to be sent with the response."""

    def __init__(
        self, request_cookies: typing.Mapping[str, str], path: str = "/", domain: typing.Optional[str] = None
    ) -> None:
        self._request_cookies = request_cookies
        self._path = path
        self._domain = domain
        self._cookies: typing.List[Cookie] = []

    @classmethod
    def from_settings(cls, request_cookies: typing.Mapping[str, str], settings: Settings) -> "CookieJar":
        return cls(request_cookies, settings.cookie_path, settings.cookie_domain)

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str, default: typing.Optional[str] = None) -> typing.Optional[str]:
        value = self._request_cookies.get(key)
        return default if value is None else value

    def set(
        self,
        name: str,
        value: typing.Optional[str],
        expire: int = 0,
        path: typing.Optional[str] = None,
        domain: typing.Optional[str] = None,
        secure: bool = False,
        http_only: bool = True,
    ) -> Cookie:
        cookie = Cookie(
            name,
            value,
            expire,
            self._path if path is None else path,
            self._domain if domain is None else domain,
            secure,
            http_only,
        )
        self._cookies.append(cookie)
        return cookie

    def remove(self, name: str, path: typing.Optional[str] = None, domain: typing.Optional[str] = None) -> Cookie:
        return self.set(name, None, 1, path, domain)

    @property
    def queued_cookies(self) -> typing.List[Cookie]:
        return list(self._cookies)
