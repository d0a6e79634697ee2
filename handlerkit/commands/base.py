"""Base types for the command framework.

Defines the records that flow between the command loader, the
registry, the validation pipeline and command bodies.

Key classes:
    CommandData: Declarative schema sent to the platform (pydantic).
    CommandOptions: Local-only flags (dev_only, deleted, permissions).
    CommandDescriptor: A loaded command: schema, callables, origin.
    DevAudience: Developer guilds, users and roles.
    CommandContext: Argument passed to ``run``/``autocomplete``.
    ValidationContext: Argument passed to validation checks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from ..interaction import Interaction


class CommandData(BaseModel):
    """Platform-facing command schema.

    ``name``, ``description`` and ``options`` are the fields the sync
    diff looks at; any other platform field (``type``,
    ``dm_permission``, localizations, ...) is kept and sent as is.
    """
    model_config = ConfigDict(extra="allow")

    name: str = ""
    description: str = ""
    options: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator("description", mode="before")
    @classmethod
    def _none_description(cls, value):
        return "" if value is None else value

    @field_validator("options", mode="before")
    @classmethod
    def _none_options(cls, value):
        return [] if value is None else value

    def to_payload(self) -> Dict[str, Any]:
        """Request body for create/edit/bulk-replace calls."""
        return self.model_dump(exclude_none=True)


class CommandOptions(BaseModel):
    """Local command flags. Accepts snake_case or camelCase keys."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    dev_only: bool = Field(default=False, alias="devOnly")
    deleted: bool = False
    guild_only: bool = Field(default=False, alias="guildOnly")
    user_permissions: List[str] = Field(default_factory=list, alias="userPermissions")
    bot_permissions: List[str] = Field(default_factory=list, alias="botPermissions")

    @field_validator("user_permissions", "bot_permissions", mode="before")
    @classmethod
    def _listify(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return list(value)


@dataclass
class CommandDescriptor:
    """A command loaded from a handler module.

    Attributes:
        data: Platform schema.
        run: Callable invoked for a standard invocation.
        autocomplete: Optional callable invoked for autocomplete.
        options: Local flags.
        category: First directory under the commands root, if any.
        file_path: File the command was loaded from.
    """
    data: CommandData
    run: Callable[..., Any]
    autocomplete: Optional[Callable[..., Any]] = None
    options: CommandOptions = field(default_factory=CommandOptions)
    category: Optional[str] = None
    file_path: Optional[Path] = None

    @property
    def name(self) -> str:
        return self.data.name

    @property
    def dev_only(self) -> bool:
        return self.options.dev_only

    @property
    def deleted(self) -> bool:
        return self.options.deleted

    @property
    def is_valid(self) -> bool:
        """Non-empty name and a callable ``run``."""
        return bool(self.data.name) and callable(self.run)

    def view(self) -> Dict[str, Any]:
        """Descriptor without its callables, for listings and health output."""
        return {
            "data": self.data.to_payload(),
            "options": self.options.model_dump(),
            "category": self.category,
            "file_path": str(self.file_path) if self.file_path else None,
        }


@dataclass(frozen=True)
class DevAudience:
    """Who counts as a developer, and where dev-only commands live."""
    guild_ids: Tuple[str, ...] = ()
    user_ids: Tuple[str, ...] = ()
    role_ids: Tuple[str, ...] = ()

    @classmethod
    def from_ids(
        cls,
        guild_ids: Iterable[str] = (),
        user_ids: Iterable[str] = (),
        role_ids: Iterable[str] = (),
    ) -> "DevAudience":
        return cls(
            guild_ids=tuple(str(i) for i in guild_ids),
            user_ids=tuple(str(i) for i in user_ids),
            role_ids=tuple(str(i) for i in role_ids),
        )

    def is_developer(self, user_id: str, role_ids: Iterable[str] = ()) -> bool:
        if user_id in self.user_ids:
            return True
        return any(role_id in self.role_ids for role_id in role_ids)


@dataclass
class CommandContext:
    """Passed to a command's ``run`` or ``autocomplete`` callable."""
    interaction: "Interaction"
    client: Any = None
    kit: Any = None


@dataclass
class ValidationContext:
    """Passed to every validation check."""
    interaction: "Interaction"
    command: CommandDescriptor
    client: Any = None
    kit: Any = None
    audience: DevAudience = field(default_factory=DevAudience)
