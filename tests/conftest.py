"""Shared fixtures: an in-memory command platform and handler file writer."""

import textwrap
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from handlerkit.exceptions import PlatformError
from handlerkit.platform import CommandPlatform, RemoteCommand, RemoteCommandState, Scope


class FakePlatform(CommandPlatform):
    """Records every call. ``failures`` maps "action:key" to an exception.

    Keys are ``fetch:<scope>``, ``set:<scope>``, ``create:<name>``,
    ``edit:<command_id>`` and ``delete:<command_id>``.
    """

    def __init__(self, remote=None, ready=True, unknown_guilds=()):
        self.ready = ready
        self.remote: Dict[Scope, List[Dict[str, Any]]] = remote or {}
        self.unknown_guilds = set(unknown_guilds)
        self.failures: Dict[str, Exception] = {}
        self.calls: List[tuple] = []

    @property
    def is_ready(self) -> bool:
        return self.ready

    def _maybe_fail(self, key: str) -> None:
        if key in self.failures:
            raise self.failures[key]

    @property
    def write_calls(self) -> List[tuple]:
        return [call for call in self.calls if call[0] != "fetch"]

    async def fetch_commands(self, scope):
        self.calls.append(("fetch", scope))
        self._maybe_fail(f"fetch:{scope}")
        return RemoteCommandState.from_payloads(scope, self.remote.get(scope, []))

    async def set_commands(self, scope, payloads):
        self.calls.append(("set", scope, [p["name"] for p in payloads]))
        self._maybe_fail(f"set:{scope}")

    async def create_command(self, scope, payload):
        self.calls.append(("create", scope, payload["name"]))
        self._maybe_fail(f"create:{payload['name']}")
        return RemoteCommand.model_validate({"id": f"new-{payload['name']}", **payload})

    async def edit_command(self, scope, command_id, payload):
        self.calls.append(("edit", scope, command_id))
        self._maybe_fail(f"edit:{command_id}")
        return RemoteCommand.model_validate({"id": command_id, **payload})

    async def delete_command(self, scope, command_id):
        self.calls.append(("delete", scope, command_id))
        self._maybe_fail(f"delete:{command_id}")

    async def resolve_guild(self, guild_id) -> Optional[str]:
        if guild_id in self.unknown_guilds:
            return None
        return f"Guild {guild_id}"


@pytest.fixture
def make_platform():
    """Factory for FakePlatform instances."""
    return FakePlatform


@pytest.fixture
def platform_error():
    return PlatformError("boom", status=500)


@pytest.fixture
def write_module():
    """Write a dedented Python handler file, creating parent directories."""
    def _write(path: Path, source: str = "") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(source))
        return path
    return _write
