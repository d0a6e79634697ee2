"""Inbound interaction record routed by the orchestrator.

The orchestrator only needs the command name and the interaction kind
to route; everything else is carried for validation checks and command
bodies. Replies go through an injected async responder so the record
stays independent of any particular chat client.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional

# async (payload: dict) -> Any
Responder = Callable[[Dict[str, Any]], Awaitable[Any]]


class InteractionKind(str, Enum):
    """What the user did to produce the interaction."""
    COMMAND = "command"
    CONTEXT_MENU = "context_menu"
    AUTOCOMPLETE = "autocomplete"
    COMPONENT = "component"


# Kinds that resolve to a registered command
ROUTABLE_KINDS = frozenset({
    InteractionKind.COMMAND,
    InteractionKind.CONTEXT_MENU,
    InteractionKind.AUTOCOMPLETE,
})


async def _discard(payload: Dict[str, Any]) -> None:
    return None


@dataclass
class Interaction:
    """A single inbound platform interaction.

    Attributes:
        command_name: Name of the invoked command.
        kind: Invocation kind (command, autocomplete, ...).
        user_id: Id of the invoking user.
        guild_id: Guild the interaction came from, None in DMs.
        member_role_ids: Role ids of the invoking member.
        member_permissions: Permission names held by the member, None
            outside a guild.
        bot_permissions: Permission names held by the bot in the guild,
            None when unknown.
        options: Opaque option payload passed through to the command.
        responder: Async callable used to send a reply payload.
    """
    command_name: str
    kind: InteractionKind = InteractionKind.COMMAND
    user_id: str = ""
    guild_id: Optional[str] = None
    member_role_ids: List[str] = field(default_factory=list)
    member_permissions: Optional[FrozenSet[str]] = None
    bot_permissions: Optional[FrozenSet[str]] = None
    options: Dict[str, Any] = field(default_factory=dict)
    responder: Responder = field(default=_discard, repr=False)
    replied: bool = field(default=False, init=False)

    @property
    def is_autocomplete(self) -> bool:
        return self.kind is InteractionKind.AUTOCOMPLETE

    @property
    def in_guild(self) -> bool:
        return self.guild_id is not None

    async def reply(
        self,
        content: Optional[str] = None,
        *,
        embeds: Optional[List[Dict[str, Any]]] = None,
        ephemeral: bool = False,
    ) -> Any:
        """Send a reply through the responder."""
        payload: Dict[str, Any] = {"ephemeral": ephemeral}
        if content is not None:
            payload["content"] = content
        if embeds:
            payload["embeds"] = embeds
        self.replied = True
        return await self.responder(payload)
