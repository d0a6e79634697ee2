"""Tests for the Discord REST platform."""

from unittest.mock import AsyncMock, patch

import aiohttp
import pytest

from handlerkit.discord_rest import DiscordRestPlatform
from handlerkit.exceptions import ErrorCategory, PlatformError, PreconditionError
from handlerkit.platform import GLOBAL_SCOPE, Scope


class _FakeResponse:
    def __init__(self, status, body=None):
        self.status = status
        self._body = body

    async def json(self, content_type="application/json"):
        if isinstance(self._body, str):
            if content_type is not None:
                raise aiohttp.ContentTypeError(None, (), message="text/plain")
            raise ValueError("Expecting value")
        return self._body

    async def text(self):
        return str(self._body)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class _FakeSession:
    """Returns queued responses and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []
        self.closed = False

    def request(self, method, url, json=None, headers=None):
        self.requests.append((method, url, json, headers))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self):
        self.closed = True


def _make_platform(*responses):
    session = _FakeSession(*responses)
    platform = DiscordRestPlatform("secret-token", "app1", base_url="https://api.test/v10", session=session)
    return platform, session


@pytest.mark.asyncio
async def test_fetch_global_commands():
    platform, session = _make_platform(
        _FakeResponse(200, [{"id": 1, "name": "ping", "description": "Ping", "type": 1}])
    )
    state = await platform.fetch_commands(GLOBAL_SCOPE)

    method, url, _, headers = session.requests[0]
    assert (method, url) == ("GET", "https://api.test/v10/applications/app1/commands")
    assert headers == {"Authorization": "Bot secret-token"}
    assert state["ping"].id == "1"
    assert state.get("missing") is None


@pytest.mark.asyncio
async def test_guild_routes_and_methods():
    guild = Scope.guild("42")
    platform, session = _make_platform(
        _FakeResponse(200, []),
        _FakeResponse(201, {"id": "5", "name": "a"}),
        _FakeResponse(200, {"id": "5", "name": "a", "description": "new"}),
        _FakeResponse(204),
    )
    await platform.set_commands(guild, [])
    created = await platform.create_command(guild, {"name": "a"})
    edited = await platform.edit_command(guild, "5", {"name": "a", "description": "new"})
    await platform.delete_command(guild, "5")

    base = "https://api.test/v10/applications/app1/guilds/42/commands"
    assert [(r[0], r[1]) for r in session.requests] == [
        ("PUT", base),
        ("POST", base),
        ("PATCH", f"{base}/5"),
        ("DELETE", f"{base}/5"),
    ]
    assert created.id == "5"
    assert edited.description == "new"


@pytest.mark.asyncio
async def test_http_error_raises_platform_error():
    platform, _ = _make_platform(_FakeResponse(400, {"message": "Invalid Form Body"}))
    with pytest.raises(PlatformError) as exc_info:
        await platform.create_command(GLOBAL_SCOPE, {"name": "bad"})
    assert exc_info.value.status == 400
    assert exc_info.value.category is ErrorCategory.PERMANENT


@pytest.mark.asyncio
async def test_server_error_is_transient():
    platform, _ = _make_platform(_FakeResponse(503, "unavailable"))
    with pytest.raises(PlatformError) as exc_info:
        await platform.fetch_commands(GLOBAL_SCOPE)
    assert exc_info.value.is_retryable


@pytest.mark.asyncio
async def test_rate_limit_retried():
    platform, session = _make_platform(
        _FakeResponse(429, {"retry_after": 0.5}),
        _FakeResponse(200, []),
    )
    with patch("handlerkit.discord_rest.asyncio.sleep", new=AsyncMock()) as mock_sleep:
        state = await platform.fetch_commands(GLOBAL_SCOPE)
    mock_sleep.assert_awaited_once_with(0.5)
    assert len(state) == 0
    assert len(session.requests) == 2


@pytest.mark.asyncio
async def test_rate_limit_without_json_uses_default_delay():
    platform, session = _make_platform(
        _FakeResponse(429, "slow down"),
        _FakeResponse(200, []),
    )
    with patch("handlerkit.discord_rest.asyncio.sleep", new=AsyncMock()) as mock_sleep:
        await platform.fetch_commands(GLOBAL_SCOPE)
    mock_sleep.assert_awaited_once_with(1.0)
    assert len(session.requests) == 2


@pytest.mark.asyncio
async def test_rate_limit_exhausts_retries():
    platform, session = _make_platform(
        *[_FakeResponse(429, {"retry_after": 0.1}) for _ in range(3)]
    )
    with patch("handlerkit.discord_rest.asyncio.sleep", new=AsyncMock()) as mock_sleep:
        with pytest.raises(PlatformError) as exc_info:
            await platform.fetch_commands(GLOBAL_SCOPE)
    assert exc_info.value.status == 429
    assert mock_sleep.await_count == 2
    assert len(session.requests) == 3


@pytest.mark.asyncio
async def test_client_error_wrapped():
    platform, _ = _make_platform(aiohttp.ClientConnectionError("reset"))
    with pytest.raises(PlatformError) as exc_info:
        await platform.fetch_commands(GLOBAL_SCOPE)
    assert exc_info.value.category is ErrorCategory.TRANSIENT


@pytest.mark.asyncio
async def test_resolve_guild():
    platform, _ = _make_platform(
        _FakeResponse(200, {"id": "42", "name": "Dev Server"}),
        _FakeResponse(404, {"message": "Unknown Guild"}),
    )
    assert await platform.resolve_guild("42") == "Dev Server"
    assert await platform.resolve_guild("43") is None


@pytest.mark.asyncio
async def test_not_started_raises():
    platform = DiscordRestPlatform("token", "app")
    assert platform.is_ready is False
    with pytest.raises(PreconditionError):
        await platform.fetch_commands(GLOBAL_SCOPE)


@pytest.mark.asyncio
async def test_injected_session_not_closed():
    platform, session = _make_platform()
    assert platform.is_ready is True
    await platform.close()
    assert session.closed is False
    assert platform.is_ready is False
