"""Discord application-commands REST client.

Implements ``CommandPlatform`` over aiohttp against the Discord HTTP
API. Global commands live under ``/applications/{app}/commands`` and
guild commands under ``/applications/{app}/guilds/{guild}/commands``.
Rate-limited requests (429) are retried after the advertised delay.
"""

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp

from .config import DEFAULT_API_BASE_URL
from .exceptions import ErrorCategory, PlatformError, PreconditionError
from .logging_config import get_logger
from .platform import CommandPlatform, RemoteCommand, RemoteCommandState, Scope

logger = get_logger("sync")

# Upper bound on a single rate-limit wait, seconds
MAX_RETRY_AFTER = 60.0
DEFAULT_RETRY_AFTER = 1.0


async def _retry_after(resp: aiohttp.ClientResponse) -> float:
    """Delay advertised by a 429 response, or the default if unreadable."""
    try:
        body = await resp.json(content_type=None)
        return float(body.get("retry_after", DEFAULT_RETRY_AFTER))
    except (ValueError, TypeError, AttributeError):
        return DEFAULT_RETRY_AFTER


class DiscordRestPlatform(CommandPlatform):
    """Command registration through the Discord REST API.

    Args:
        token: Bot token (sent as ``Authorization: Bot <token>``).
        application_id: Application (client) id owning the commands.
        base_url: API base URL including the version.
        timeout: Total per-request timeout in seconds.
        max_retries: Retries for rate-limited requests.
        session: Existing aiohttp session to use instead of creating one.
    """

    def __init__(
        self,
        token: str,
        application_id: str,
        *,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = 15.0,
        max_retries: int = 2,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.application_id = str(application_id)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self._token = token
        self.session = session
        self._owns_session = False

    async def start(self) -> None:
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True

    async def close(self) -> None:
        if self.session is not None and self._owns_session:
            await self.session.close()
        self.session = None
        self._owns_session = False

    async def __aenter__(self) -> "DiscordRestPlatform":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def is_ready(self) -> bool:
        return (
            self.session is not None
            and not self.session.closed
            and bool(self._token)
            and bool(self.application_id)
        )

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bot {self._token}"}

    def _commands_route(self, scope: Scope) -> str:
        if scope.is_global:
            return f"/applications/{self.application_id}/commands"
        return f"/applications/{self.application_id}/guilds/{scope.guild_id}/commands"

    async def _request(self, method: str, route: str, payload: Any = None) -> Any:
        if self.session is None:
            raise PreconditionError(
                "REST session not started", module="platform", route=route
            )
        url = f"{self.base_url}{route}"

        for attempt in range(self.max_retries + 1):
            try:
                async with self.session.request(
                    method, url, json=payload, headers=self._headers
                ) as resp:
                    if resp.status == 429 and attempt < self.max_retries:
                        delay = min(await _retry_after(resp), MAX_RETRY_AFTER)
                        logger.warning(
                            "rest_rate_limited",
                            method=method,
                            route=route,
                            attempt=attempt + 1,
                            retry_delay=delay,
                        )
                        await asyncio.sleep(delay)
                        continue
                    if resp.status == 204:
                        return None
                    if resp.status >= 400:
                        body = await resp.text()
                        raise PlatformError(
                            f"{method} {route} failed with HTTP {resp.status}",
                            status=resp.status,
                            body=body[:200],
                        )
                    return await resp.json()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise PlatformError(
                    f"{method} {route} failed: {e}",
                    category=ErrorCategory.TRANSIENT,
                    error_type=type(e).__name__,
                ) from e

    async def fetch_commands(self, scope: Scope) -> RemoteCommandState:
        payloads = await self._request("GET", self._commands_route(scope))
        return RemoteCommandState.from_payloads(scope, payloads or [])

    async def set_commands(self, scope: Scope, payloads: List[Dict[str, Any]]) -> None:
        await self._request("PUT", self._commands_route(scope), payloads)

    async def create_command(self, scope: Scope, payload: Dict[str, Any]) -> RemoteCommand:
        body = await self._request("POST", self._commands_route(scope), payload)
        return RemoteCommand.model_validate(body)

    async def edit_command(
        self, scope: Scope, command_id: str, payload: Dict[str, Any]
    ) -> RemoteCommand:
        body = await self._request(
            "PATCH", f"{self._commands_route(scope)}/{command_id}", payload
        )
        return RemoteCommand.model_validate(body)

    async def delete_command(self, scope: Scope, command_id: str) -> None:
        await self._request("DELETE", f"{self._commands_route(scope)}/{command_id}")

    async def resolve_guild(self, guild_id: str) -> Optional[str]:
        """Guild name, or None if the guild is unknown or not joined."""
        try:
            body = await self._request("GET", f"/guilds/{guild_id}")
        except PlatformError as e:
            if e.status in (403, 404):
                return None
            raise
        return (body or {}).get("name") or str(guild_id)
