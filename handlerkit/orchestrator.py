"""Startup sequencing, hot reload and interaction routing.

``Orchestrator.init()`` runs the startup phases strictly in order:

    UNINITIALIZED -> VALIDATIONS_LOADED -> EVENTS_BOUND
        -> COMMANDS_SYNCED -> READY

Each reload method re-runs one phase on its own. Inbound interactions
arrive on the event source's interaction event and are routed to the
matching command after the validation pipeline approves them.
"""

import inspect
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .commands.base import CommandContext, DevAudience, ValidationContext
from .commands.loader import build_commands
from .commands.registry import CommandRegistry, SyncReport
from .config import Config
from .emitter import EventEmitter
from .events import EventBus
from .exceptions import ConfigurationError, PreconditionError
from .interaction import ROUTABLE_KINDS, Interaction
from .logging_config import get_logger
from .module_loader import ModuleLoader, PathLike
from .platform import CommandPlatform
from .validations.pipeline import ValidationPipeline

logger = get_logger("commands")

READY_EVENT = "ready"


class Phase(str, Enum):
    UNINITIALIZED = "uninitialized"
    VALIDATIONS_LOADED = "validations_loaded"
    EVENTS_BOUND = "events_bound"
    COMMANDS_SYNCED = "commands_synced"
    READY = "ready"


def _optional_path(path: Optional[PathLike]) -> Optional[Path]:
    return Path(path) if path else None


class Orchestrator:
    """Wires the loader, event bus, validation pipeline and registry.

    Args:
        platform: Remote command registration API.
        event_source: Event source delivering platform events.
        client: Opaque chat client handed to handlers and commands.
        commands_path: Root of command modules.
        events_path: Root of event handler folders.
        validations_path: Root of validation modules. Requires
            ``commands_path``.
        dev_guild_ids: Guilds receiving dev-only commands.
        dev_user_ids: Users allowed to run dev-only commands.
        dev_role_ids: Roles allowed to run dev-only commands.
        bulk_register: Use full replace instead of incremental sync.
        skip_builtin_validations: Do not run the built-in checks.
        deep_compare: Compare option payloads during incremental sync.
        interaction_event: Event name carrying interactions.
        loader: Shared module loader.

    Raises:
        ConfigurationError: ``validations_path`` without ``commands_path``.
    """

    def __init__(
        self,
        platform: CommandPlatform,
        event_source: EventEmitter,
        *,
        client: Any = None,
        commands_path: Optional[PathLike] = None,
        events_path: Optional[PathLike] = None,
        validations_path: Optional[PathLike] = None,
        dev_guild_ids: Iterable[str] = (),
        dev_user_ids: Iterable[str] = (),
        dev_role_ids: Iterable[str] = (),
        bulk_register: bool = False,
        skip_builtin_validations: bool = False,
        deep_compare: bool = False,
        interaction_event: str = "interaction_create",
        loader: Optional[ModuleLoader] = None,
    ):
        if validations_path and not commands_path:
            raise ConfigurationError(
                '"commands_path" is required when "validations_path" is set.',
                setting_name="validations_path",
            )
        self.platform = platform
        self.event_source = event_source
        self.client = client
        self.commands_path = _optional_path(commands_path)
        self.events_path = _optional_path(events_path)
        self.validations_path = _optional_path(validations_path)
        self.bulk_register = bulk_register
        self.interaction_event = interaction_event
        self.audience = DevAudience.from_ids(dev_guild_ids, dev_user_ids, dev_role_ids)

        self.loader = loader or ModuleLoader()
        self.registry = CommandRegistry(platform, self.audience, deep_compare=deep_compare)
        self.event_bus = EventBus(event_source, extra_args=(client, self), loader=self.loader)
        self.validations = ValidationPipeline(
            loader=self.loader, skip_builtins=skip_builtin_validations
        )

        self.last_sync: Optional[SyncReport] = None
        self._phase = Phase.UNINITIALIZED
        self._router_bound = False

    @classmethod
    def from_config(
        cls,
        config: Config,
        platform: CommandPlatform,
        event_source: EventEmitter,
        *,
        client: Any = None,
        loader: Optional[ModuleLoader] = None,
    ) -> "Orchestrator":
        return cls(
            platform,
            event_source,
            client=client,
            commands_path=config.commands_path,
            events_path=config.events_path,
            validations_path=config.validations_path,
            dev_guild_ids=config.dev_guild_ids,
            dev_user_ids=config.dev_user_ids,
            dev_role_ids=config.dev_role_ids,
            bulk_register=config.bulk_register,
            skip_builtin_validations=config.skip_builtin_validations,
            deep_compare=config.sync_deep_compare,
            interaction_event=config.interaction_event,
            loader=loader,
        )

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def commands(self) -> List[Dict[str, Any]]:
        """Declared commands without their callables."""
        return [command.view() for command in self.registry.commands]

    @property
    def dev_guild_ids(self) -> List[str]:
        return list(self.audience.guild_ids)

    @property
    def dev_user_ids(self) -> List[str]:
        return list(self.audience.user_ids)

    @property
    def dev_role_ids(self) -> List[str]:
        return list(self.audience.role_ids)

    # Startup

    async def init(self) -> None:
        """Run every startup phase once, in order.

        Raises:
            PreconditionError: ``init`` was already called.
        """
        if self._phase is not Phase.UNINITIALIZED:
            raise PreconditionError("Orchestrator is already initialized", phase=self._phase.value)

        if self.validations_path:
            self.validations.load(self.validations_path)
        self._phase = Phase.VALIDATIONS_LOADED

        if self.events_path:
            self.event_bus.init(self.events_path)
        self._phase = Phase.EVENTS_BOUND

        if self.commands_path:
            self.registry.declare(build_commands(self.commands_path, self.loader))
            self.registry.warn_missing_audience()
            self._bind_router()
            if self.platform.is_ready:
                await self._sync(reloading=False)
            else:
                self.event_source.once(READY_EVENT, self._deferred_sync)
                logger.info("command_sync_deferred", until=READY_EVENT)
        self._phase = Phase.COMMANDS_SYNCED

        self._phase = Phase.READY
        logger.info(
            "handlerkit_ready",
            commands=len(self.registry),
            events=len(self.event_bus.events),
            validations=len(self.validations.validations),
        )

    async def _deferred_sync(self, *args: Any) -> None:
        await self._sync(reloading=False)

    async def _sync(self, *, reloading: bool, scope_type: Optional[str] = None) -> SyncReport:
        if self.bulk_register:
            report = await self.registry.sync_full(scope_type=scope_type, reloading=reloading)
        else:
            report = await self.registry.sync_incremental(scope_type=scope_type, reloading=reloading)
        self.last_sync = report
        if not report.ok:
            logger.warning("command_sync_incomplete", failures=len(report.failures))
        return report

    def _bind_router(self) -> None:
        if self._router_bound:
            return
        self.event_source.on(self.interaction_event, self._on_interaction)
        self._router_bound = True

    async def _on_interaction(self, interaction: Interaction, *args: Any) -> None:
        try:
            await self.handle_interaction(interaction)
        except Exception as e:
            logger.error(
                "command_failed",
                command=getattr(interaction, "command_name", None),
                error=str(e),
                exc_info=True,
            )

    # Reloads

    async def reload_commands(self, scope_type: Optional[str] = None) -> SyncReport:
        """Rebuild commands from disk and sync them.

        Args:
            scope_type: "dev", "global" or None for both.

        Raises:
            ConfigurationError: No commands path configured.
            PreconditionError: The platform is not ready.
        """
        if not self.commands_path:
            raise ConfigurationError(
                'Cannot reload commands as "commands_path" was not provided.',
                setting_name="commands_path",
            )
        if not self.platform.is_ready:
            raise PreconditionError("Cannot reload commands when the platform is not ready.")
        self.registry.declare(build_commands(self.commands_path, self.loader))
        self._bind_router()
        return await self._sync(reloading=True, scope_type=scope_type)

    async def reload_events(self) -> None:
        """Rebuild event handlers from disk and rebind them."""
        if not self.events_path:
            raise ConfigurationError(
                'Cannot reload events as "events_path" was not provided.',
                setting_name="events_path",
            )
        if self.event_bus.events_path is None:
            self.event_bus.init(self.events_path)
        else:
            self.event_bus.rebuild()

    async def reload_validations(self) -> None:
        """Rebuild user validation checks from disk."""
        if not self.validations_path:
            raise ConfigurationError(
                'Cannot reload validations as "validations_path" was not provided.',
                setting_name="validations_path",
            )
        self.validations.load(self.validations_path)
        logger.info("validations_reloaded", count=len(self.validations.validations))

    # Routing

    async def handle_interaction(self, interaction: Interaction) -> bool:
        """Validate and invoke the command an interaction targets.

        Returns True if the command's ``run`` or ``autocomplete`` was
        invoked. Exceptions raised by the command propagate.
        """
        if interaction.kind not in ROUTABLE_KINDS:
            return False

        # Captured once: a concurrent reload swaps the tuple, not its contents
        commands = self.registry.commands
        command = next((c for c in commands if c.name == interaction.command_name), None)
        if command is None:
            logger.debug("interaction_unknown_command", command=interaction.command_name)
            return False
        if interaction.is_autocomplete and command.autocomplete is None:
            return False

        validation_context = ValidationContext(
            interaction=interaction,
            command=command,
            client=self.client,
            kit=self,
            audience=self.audience,
        )
        if not await self.validations.run(validation_context):
            return False

        target = command.autocomplete if interaction.is_autocomplete else command.run
        result = target(CommandContext(interaction=interaction, client=self.client, kit=self))
        if inspect.isawaitable(result):
            await result
        return True

    # Health

    def health(self) -> Dict[str, Any]:
        """Snapshot of phase, loaded counts and last sync result."""
        healthy = self._phase is Phase.READY
        if self.commands_path and not len(self.registry):
            healthy = False
        if self.last_sync is not None and not self.last_sync.ok:
            healthy = False
        return {
            "status": "healthy" if healthy else "unhealthy",
            "phase": self._phase.value,
            "commands": len(self.registry),
            "events": len(self.event_bus.events),
            "validations": len(self.validations.validations),
            "platform_ready": self.platform.is_ready,
            "last_sync": self.last_sync.summary() if self.last_sync else None,
        }
