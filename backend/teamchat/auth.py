import logging
import time
from dataclasses import dataclass, field
from typing import Protocol

import httpx
import jwt
from fastapi import Request
from starlette.requests import HTTPConnection

from .config import Settings
from .errors import Unauthorized
from .schemas import UserIdentity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionCredentials:
    """Whatever the client presented at connect/request time."""

    origin: str | None = None
    cookie_header: str | None = None
    cookies: dict[str, str] = field(default_factory=dict)
    bearer_token: str | None = None
    query_token: str | None = None


class SessionResolver(Protocol):
    async def resolve(self, credentials: SessionCredentials) -> UserIdentity | None: ...


def _request_origin(conn: HTTPConnection) -> str | None:
    host = conn.headers.get("host")
    if not host:
        return None
    forwarded = conn.headers.get("x-forwarded-proto")
    scheme = forwarded or {"ws": "http", "wss": "https"}.get(conn.url.scheme, conn.url.scheme)
    return f"{scheme}://{host}"


def credentials_from_connection(conn: HTTPConnection) -> SessionCredentials:
    bearer = None
    authorization = conn.headers.get("authorization", "")
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        bearer = value.strip()
    return SessionCredentials(
        origin=_request_origin(conn),
        cookie_header=conn.headers.get("cookie"),
        cookies=dict(conn.cookies),
        bearer_token=bearer,
        query_token=conn.query_params.get("token") or None,
    )


# ---------------------- JWT SESSION COOKIE ----------------------
def create_session_token(sub: str, settings: Settings, expires_minutes: int = 60 * 24 * 30, **claims) -> str:
    now = int(time.time())
    payload = {"sub": sub, "iat": now, "exp": now + 60 * expires_minutes, **claims}
    return jwt.encode(payload, settings.session_secret_key, algorithm=settings.session_algorithm)


class JwtSessionResolver:
    """Reads the signed session token issued by the OAuth layer."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def _pick_token(self, credentials: SessionCredentials) -> str | None:
        return (
            credentials.bearer_token
            or credentials.cookies.get(self.settings.session_cookie_name)
            or credentials.query_token
        )

    async def resolve(self, credentials: SessionCredentials) -> UserIdentity | None:
        token = self._pick_token(credentials)
        if not token:
            return None
        try:
            data = jwt.decode(token, self.settings.session_secret_key, algorithms=[self.settings.session_algorithm])
        except jwt.ExpiredSignatureError:
            logger.info("Rejected expired session token")
            return None
        except jwt.InvalidTokenError:
            logger.info("Rejected invalid session token")
            return None
        sub = data.get("sub")
        if not sub:
            return None
        return UserIdentity(id=str(sub), name=data.get("name"), email=data.get("email"), image=data.get("picture"))


# ---------------------- REMOTE SESSION ENDPOINT ----------------------
class HttpSessionResolver:
    """Forwards the cookie header to the auth service's ``/auth/session``."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self.transport = transport

    def _session_url(self, credentials: SessionCredentials) -> str | None:
        if self.settings.auth_session_url:
            return self.settings.auth_session_url
        if credentials.origin:
            return f"{credentials.origin}/auth/session"
        return None

    async def resolve(self, credentials: SessionCredentials) -> UserIdentity | None:
        url = self._session_url(credentials)
        if not credentials.cookie_header or not url:
            return None
        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.get(
                    url,
                    headers={"cookie": credentials.cookie_header, "accept": "application/json"},
                )
            if not response.is_success:
                return None
            payload = response.json()
        except (httpx.HTTPError, ValueError):
            logger.warning("Session lookup against %s failed", url, exc_info=True)
            return None

        user = payload.get("user") if isinstance(payload, dict) else None
        if not isinstance(user, dict) or not user.get("id"):
            return None
        return UserIdentity(id=str(user["id"]), name=user.get("name"), email=user.get("email"), image=user.get("image"))


def build_session_resolver(settings: Settings) -> SessionResolver:
    if settings.session_resolver == "http":
        return HttpSessionResolver(settings)
    return JwtSessionResolver(settings)


# ---------------------- FASTAPI DEPENDENCY ----------------------
async def get_current_identity(request: Request) -> UserIdentity:
    resolver: SessionResolver = request.app.state.session_resolver
    identity = await resolver.resolve(credentials_from_connection(request))
    if identity is None:
        raise Unauthorized()
    return identity


async def get_current_user_id(request: Request) -> str:
    identity = await get_current_identity(request)
    return identity.id
