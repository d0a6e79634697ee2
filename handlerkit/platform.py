"""Remote command platform interface.

The command registry talks to the chat platform only through
``CommandPlatform``. A scope is either the global scope or one guild;
every operation takes the scope it applies to.

Key classes:
    Scope: Global or per-guild registration target.
    RemoteCommand: A command as reported by the platform.
    RemoteCommandState: Read-only view of one scope's remote commands.
    CommandPlatform: Abstract async API the registry depends on.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator


@dataclass(frozen=True)
class Scope:
    """Registration target. ``guild_id`` None means global."""
    guild_id: Optional[str] = None

    @classmethod
    def guild(cls, guild_id: str) -> "Scope":
        return cls(guild_id=str(guild_id))

    @property
    def is_global(self) -> bool:
        return self.guild_id is None

    def __str__(self) -> str:
        return "global" if self.is_global else f"guild:{self.guild_id}"


GLOBAL_SCOPE = Scope()


class RemoteCommand(BaseModel):
    """A registered command as returned by the platform."""
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    description: Optional[str] = ""
    options: Optional[List[Dict[str, Any]]] = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        return str(value)


class RemoteCommandState(Mapping):
    """Remote commands of one scope, keyed by name. Read-only."""

    def __init__(self, scope: Scope, commands: Iterable[RemoteCommand] = ()):
        self.scope = scope
        self._by_name = MappingProxyType({command.name: command for command in commands})

    @classmethod
    def from_payloads(cls, scope: Scope, payloads: Iterable[Dict[str, Any]]) -> "RemoteCommandState":
        return cls(scope, [RemoteCommand.model_validate(payload) for payload in payloads])

    def __getitem__(self, name: str) -> RemoteCommand:
        return self._by_name[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._by_name)

    def __len__(self) -> int:
        return len(self._by_name)

    def __repr__(self) -> str:
        return f"RemoteCommandState(scope={self.scope}, names={list(self._by_name)})"


class CommandPlatform(ABC):
    """Async command registration API of a chat platform.

    Implementations raise ``PlatformError`` on rejected or failed calls.
    """

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        """Whether the platform can accept calls now."""

    @abstractmethod
    async def fetch_commands(self, scope: Scope) -> RemoteCommandState:
        """Return the commands currently registered in ``scope``."""

    @abstractmethod
    async def set_commands(self, scope: Scope, payloads: List[Dict[str, Any]]) -> None:
        """Replace every command in ``scope`` with ``payloads``."""

    @abstractmethod
    async def create_command(self, scope: Scope, payload: Dict[str, Any]) -> RemoteCommand:
        """Register one command in ``scope``."""

    @abstractmethod
    async def edit_command(
        self, scope: Scope, command_id: str, payload: Dict[str, Any]
    ) -> RemoteCommand:
        """Overwrite the registered command ``command_id`` in ``scope``."""

    @abstractmethod
    async def delete_command(self, scope: Scope, command_id: str) -> None:
        """Remove the registered command ``command_id`` from ``scope``."""

    async def resolve_guild(self, guild_id: str) -> Optional[str]:
        """Return the guild's display name, or None if it cannot be reached.

        The default treats every guild as reachable.
        """
        return str(guild_id)
