import httpx
from starlette.requests import HTTPConnection

from teamchat.auth import (
    HttpSessionResolver,
    JwtSessionResolver,
    SessionCredentials,
    build_session_resolver,
    create_session_token,
    credentials_from_connection,
)
from teamchat.config import Settings


def ws_scope(headers, query=b"", scheme="ws"):
    return {
        "type": "websocket",
        "scheme": scheme,
        "path": "/ws/chat",
        "query_string": query,
        "headers": [(k.encode(), v.encode()) for k, v in headers.items()],
        "server": ("api.test", 80),
    }


def test_credentials_from_websocket_scope():
    conn = HTTPConnection(
        ws_scope({"host": "api.test", "cookie": "a=1; b=2", "authorization": "Bearer tok"}, query=b"token=q")
    )

    creds = credentials_from_connection(conn)

    assert creds.origin == "http://api.test"
    assert creds.cookie_header == "a=1; b=2"
    assert creds.cookies == {"a": "1", "b": "2"}
    assert creds.bearer_token == "tok"
    assert creds.query_token == "q"


def test_forwarded_proto_wins():
    conn = HTTPConnection(ws_scope({"host": "chat.example.com", "x-forwarded-proto": "https"}))
    assert credentials_from_connection(conn).origin == "https://chat.example.com"


def test_non_bearer_authorization_is_ignored():
    conn = HTTPConnection(ws_scope({"host": "api.test", "authorization": "Basic abc"}))
    assert credentials_from_connection(conn).bearer_token is None


async def test_jwt_resolver_reads_cookie(settings):
    token = create_session_token("u1", settings, name="Ada", email="ada@example.com")
    resolver = JwtSessionResolver(settings)

    identity = await resolver.resolve(SessionCredentials(cookies={settings.session_cookie_name: token}))

    assert identity.id == "u1"
    assert identity.name == "Ada"
    assert identity.email == "ada@example.com"


async def test_jwt_resolver_prefers_bearer(settings):
    resolver = JwtSessionResolver(settings)
    creds = SessionCredentials(
        bearer_token=create_session_token("from-bearer", settings),
        cookies={settings.session_cookie_name: create_session_token("from-cookie", settings)},
    )
    assert (await resolver.resolve(creds)).id == "from-bearer"


async def test_jwt_resolver_rejects_bad_tokens(settings):
    resolver = JwtSessionResolver(settings)
    other = Settings(session_secret_key="someone-else", database_url=settings.database_url)

    assert await resolver.resolve(SessionCredentials()) is None
    assert await resolver.resolve(SessionCredentials(bearer_token="garbage")) is None
    assert await resolver.resolve(SessionCredentials(bearer_token=create_session_token("u1", other))) is None
    expired = create_session_token("u1", settings, expires_minutes=-5)
    assert await resolver.resolve(SessionCredentials(bearer_token=expired)) is None


async def test_http_resolver_forwards_cookie(settings):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["cookie"] = request.headers.get("cookie")
        return httpx.Response(200, json={"user": {"id": "u1", "name": "Ada", "image": "a.png"}})

    resolver = HttpSessionResolver(settings, transport=httpx.MockTransport(handler))
    identity = await resolver.resolve(SessionCredentials(origin="http://api.test", cookie_header="sid=abc"))

    assert identity.id == "u1"
    assert identity.image == "a.png"
    assert seen == {"url": "http://api.test/auth/session", "cookie": "sid=abc"}


async def test_http_resolver_uses_configured_url(settings):
    settings = settings.model_copy(update={"auth_session_url": "http://auth.internal/session"})
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, json={"user": {"id": "u2"}})

    resolver = HttpSessionResolver(settings, transport=httpx.MockTransport(handler))
    await resolver.resolve(SessionCredentials(origin="http://api.test", cookie_header="sid=abc"))

    assert seen == ["http://auth.internal/session"]


async def test_http_resolver_returns_none_on_failures(settings):
    def make(response):
        return HttpSessionResolver(settings, transport=httpx.MockTransport(lambda request: response))

    creds = SessionCredentials(origin="http://api.test", cookie_header="sid=abc")

    assert await make(httpx.Response(401)).resolve(creds) is None
    assert await make(httpx.Response(200, json={})).resolve(creds) is None
    assert await make(httpx.Response(200, json={"user": {}})).resolve(creds) is None
    assert await make(httpx.Response(200, content=b"<html>")).resolve(creds) is None
    assert await make(httpx.Response(200, json={"user": {"id": "x"}})).resolve(SessionCredentials(origin="http://api.test")) is None


async def test_http_resolver_network_error(settings):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    resolver = HttpSessionResolver(settings, transport=httpx.MockTransport(handler))
    creds = SessionCredentials(origin="http://api.test", cookie_header="sid=abc")

    assert await resolver.resolve(creds) is None


def test_build_session_resolver(settings):
    assert isinstance(build_session_resolver(settings), JwtSessionResolver)
    http_settings = settings.model_copy(update={"session_resolver": "http"})
    assert isinstance(build_session_resolver(http_settings), HttpSessionResolver)
