# === NAVMAP v1 ===
# {
#   "module": "CrawlKit.PageFetch.auth",
#   "purpose": "Basic and form login credentials applied once at fetcher startup",
#   "sections": [
#     {"id": "scopedcredentials", "name": "ScopedCredentials", "anchor": "class-scopedcredentials", "kind": "class"},
#     {"id": "loginsession", "name": "LoginSession", "anchor": "class-loginsession", "kind": "class"},
#     {"id": "basiccredential", "name": "BasicCredential", "anchor": "class-basiccredential", "kind": "class"},
#     {"id": "formcredential", "name": "FormCredential", "anchor": "class-formcredential", "kind": "class"},
#     {"id": "authenticator", "name": "Authenticator", "anchor": "class-authenticator", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Authentication bootstrapping for the page fetcher.

Two credential variants share a single ``apply(session)`` contract:

- :class:`BasicCredential` registers a username/password for one
  ``(host, port)`` scope on the shared :class:`ScopedCredentials` provider.
  The provider is attached to the pooled HTTPX client when the fetcher is
  built, so registering credentials never rebuilds the client, its transports,
  or its connection limits.
- :class:`FormCredential` posts a urlencoded login form once. Session cookies
  returned by the site stay in the client's cookie jar and are replayed on
  later fetches.

:class:`Authenticator` applies a configured list of credentials in order.
Failures while logging in are logged and swallowed: the fetcher stays usable,
just unauthenticated for that site.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Annotated, Dict, Generator, Iterable, Literal, Optional, Tuple, Union
from urllib.parse import urlsplit

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_PORTS: Dict[str, int] = {"http": 80, "https": 443}


# ============================================================================
# Credentials Provider
# ============================================================================


class ScopedCredentials(httpx.Auth):
    """HTTPX auth flow presenting basic credentials per ``(host, port)`` scope.

    Requests whose host and effective port match a registered scope receive an
    ``Authorization: Basic ...`` header; every other request passes through
    untouched. Registering a scope twice overwrites the earlier credentials.
    """

    def __init__(self) -> None:
        self._scopes: Dict[Tuple[str, int], Tuple[str, str]] = {}
        self._lock = threading.Lock()

    def set_credentials(self, host: str, port: int, username: str, password: str) -> None:
        with self._lock:
            self._scopes[(host.lower(), port)] = (username, password)

    def lookup(self, url: httpx.URL) -> Optional[Tuple[str, str]]:
        port = url.port or DEFAULT_PORTS.get(url.scheme)
        if port is None:
            return None
        with self._lock:
            return self._scopes.get((url.host.lower(), port))

    def scopes(self) -> Tuple[Tuple[str, int], ...]:
        with self._lock:
            return tuple(self._scopes)

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        credentials = self.lookup(request.url)
        if credentials is None or "Authorization" in request.headers:
            yield request
            return
        yield from httpx.BasicAuth(*credentials).auth_flow(request)

    def __len__(self) -> int:
        with self._lock:
            return len(self._scopes)


@dataclass(frozen=True)
class LoginSession:
    """Handles a credential needs to log in."""

    client: httpx.Client
    credentials: ScopedCredentials


# ============================================================================
# Credential Variants
# ============================================================================


class _CredentialBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    protocol: Literal["http", "https"] = Field(default="http", description="Login URL scheme")
    host: str = Field(..., min_length=1, description="Host the credentials belong to")
    port: Optional[int] = Field(
        default=None,
        ge=1,
        le=65535,
        description="Port; defaults to the scheme's well-known port",
    )
    username: str = Field(..., description="Account name")
    password: str = Field(..., repr=False, description="Account password")

    @field_validator("host", mode="before")
    @classmethod
    def normalize_host(cls, v: str) -> str:
        return str(v).strip().lower()

    @property
    def effective_port(self) -> int:
        return self.port or DEFAULT_PORTS[self.protocol]


class BasicCredential(_CredentialBase):
    """HTTP basic credentials scoped to one host and port."""

    kind: Literal["basic"] = "basic"

    @property
    def login_target(self) -> str:
        return f"{self.protocol}://{self.host}:{self.effective_port}/"

    @classmethod
    def from_url(cls, login_url: str, username: str, password: str) -> "BasicCredential":
        protocol, host, port, _ = _split_login_url(login_url)
        return cls(protocol=protocol, host=host, port=port, username=username, password=password)

    def apply(self, session: LoginSession) -> None:
        logger.info("BASIC authentication for: %s", self.login_target)
        session.credentials.set_credentials(
            self.host, self.effective_port, self.username, self.password
        )


class FormCredential(_CredentialBase):
    """Login form credentials submitted once as a urlencoded POST."""

    kind: Literal["form"] = "form"
    login_path: str = Field(default="/", description="Path of the login form action")
    username_field: str = Field(..., min_length=1, description="Form field holding the username")
    password_field: str = Field(..., min_length=1, description="Form field holding the password")

    @field_validator("login_path", mode="before")
    @classmethod
    def ensure_leading_slash(cls, v: str) -> str:
        text = str(v or "/").strip()
        return text if text.startswith("/") else f"/{text}"

    @property
    def login_target(self) -> str:
        return f"{self.protocol}://{self.host}:{self.effective_port}{self.login_path}"

    @classmethod
    def from_url(
        cls,
        login_url: str,
        username: str,
        password: str,
        *,
        username_field: str,
        password_field: str,
    ) -> "FormCredential":
        protocol, host, port, path = _split_login_url(login_url)
        return cls(
            protocol=protocol,
            host=host,
            port=port,
            login_path=path or "/",
            username=username,
            password=password,
            username_field=username_field,
            password_field=password_field,
        )

    def apply(self, session: LoginSession) -> None:
        logger.info("FORM authentication for: %s", self.login_target)
        form = {self.username_field: self.username, self.password_field: self.password}
        try:
            response = session.client.post(self.login_target, data=form)
        except UnicodeEncodeError:
            logger.error(
                "Encountered a non supported encoding while trying to login to: %s",
                self.host,
                exc_info=True,
            )
            return
        except httpx.InvalidURL:
            logger.error(
                "Malformed login URL for: %s",
                self.host,
                exc_info=True,
            )
            return
        except httpx.ProtocolError:
            logger.error(
                "While trying to login to: %s - Client protocol not supported",
                self.host,
                exc_info=True,
            )
            return
        except httpx.HTTPError:
            logger.error(
                "While trying to login to: %s - Error making request",
                self.host,
                exc_info=True,
            )
            return
        logger.debug(
            "Successfully logged in with user: %s to: %s",
            self.username,
            self.host,
            extra={"status": response.status_code, "cookies": len(session.client.cookies)},
        )


AuthCredential = Annotated[Union[BasicCredential, FormCredential], Field(discriminator="kind")]


def _split_login_url(login_url: str) -> Tuple[str, str, Optional[int], str]:
    parts = urlsplit(login_url)
    if parts.scheme not in DEFAULT_PORTS or not parts.hostname:
        raise ValueError(f"Login URL must be an absolute http(s) URL: {login_url!r}")
    return parts.scheme, parts.hostname, parts.port, parts.path


# ============================================================================
# Authenticator
# ============================================================================


class Authenticator:
    """Applies configured credentials to the shared client, in list order."""

    def __init__(self, session: LoginSession) -> None:
        self._session = session

    def apply(self, credentials: Iterable[Union[BasicCredential, FormCredential]]) -> int:
        """Apply every credential once; returns how many were applied."""
        applied = 0
        for credential in credentials:
            credential.apply(self._session)
            applied += 1
        return applied


__all__ = [
    "AuthCredential",
    "Authenticator",
    "BasicCredential",
    "FormCredential",
    "LoginSession",
    "ScopedCredentials",
]
