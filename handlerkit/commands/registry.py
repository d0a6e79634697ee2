"""Declared command set and its synchronization with the platform.

Commands flagged ``dev_only`` are registered in every developer guild;
everything else is registered globally. Two sync strategies exist:

- ``sync_full`` replaces each scope's commands with one bulk call.
- ``sync_incremental`` fetches each scope's remote commands once and
  then creates, edits or deletes single commands as needed.

Per-item failures never abort a sync. They are logged with the command
name and scope and collected in the returned ``SyncReport``.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..exceptions import SyncError
from ..logging_config import get_logger
from ..platform import GLOBAL_SCOPE, CommandPlatform, RemoteCommand, Scope
from .base import CommandData, CommandDescriptor, DevAudience

logger = get_logger("sync")

DEV = "dev"
GLOBAL = "global"
SCOPE_TYPES = (DEV, GLOBAL)


# Option keys whose value is a platform default are ignored by deep compare
def _is_default(value: Any) -> bool:
    return value is None or value is False or value == [] or value == {}


def _normalize_option(option: Any) -> Any:
    if isinstance(option, dict):
        return {
            key: _normalize_option(value)
            for key, value in sorted(option.items())
            if not _is_default(value)
        }
    if isinstance(option, list):
        return [_normalize_option(item) for item in option]
    return option


def are_commands_different(
    remote: RemoteCommand, local: CommandData, deep: bool = False
) -> bool:
    """Whether the remote copy of a command needs an edit.

    The shallow test compares the description and the number of
    options. With ``deep`` the option payloads are compared as well,
    ignoring keys that only carry a default value.
    """
    remote_options = remote.options or []
    local_options = local.options or []
    if (remote.description or "") != (local.description or ""):
        return True
    if len(remote_options) != len(local_options):
        return True
    if deep:
        return _normalize_option(remote_options) != _normalize_option(local_options)
    return False


@dataclass
class SyncReport:
    """What one sync pass did."""
    mode: str
    created: int = 0
    edited: int = 0
    deleted: int = 0
    unchanged: int = 0
    skipped: int = 0
    replaced: Dict[str, int] = field(default_factory=dict)
    failures: List[SyncError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def record_failure(self, error: SyncError) -> None:
        self.failures.append(error)

    def summary(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "created": self.created,
            "edited": self.edited,
            "deleted": self.deleted,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "replaced": dict(self.replaced),
            "failures": len(self.failures),
        }


def _check_scope_type(scope_type: Optional[str]) -> None:
    if scope_type is not None and scope_type not in SCOPE_TYPES:
        raise ValueError(f"scope_type must be one of {SCOPE_TYPES} or None, got {scope_type!r}")


class CommandRegistry:
    """Holds the declared commands and reconciles them with a platform.

    Args:
        platform: Remote registration API.
        audience: Developer guilds, users and roles.
        deep_compare: Compare option payloads when diffing.
    """

    def __init__(
        self,
        platform: CommandPlatform,
        audience: Optional[DevAudience] = None,
        *,
        deep_compare: bool = False,
    ):
        self.platform = platform
        self.audience = audience or DevAudience()
        self.deep_compare = deep_compare
        self._commands: Tuple[CommandDescriptor, ...] = ()

    # Declared set

    def declare(self, commands: Iterable[CommandDescriptor]) -> Tuple[CommandDescriptor, ...]:
        """Swap in a new declared command set.

        Invalid descriptors and later duplicates of a name are dropped
        with a warning. Callers holding the previous tuple keep it.
        """
        self._commands = tuple(self._accept(commands))
        logger.info("commands_declared", count=len(self._commands))
        return self._commands

    @staticmethod
    def _accept(commands: Iterable[CommandDescriptor]) -> List[CommandDescriptor]:
        accepted: List[CommandDescriptor] = []
        seen = set()
        for command in commands:
            if not command.is_valid:
                logger.warning(
                    "command_rejected",
                    command=command.name or None,
                    path=str(command.file_path) if command.file_path else None,
                )
                continue
            if command.name in seen:
                logger.warning(
                    "command_name_conflict",
                    command=command.name,
                    path=str(command.file_path) if command.file_path else None,
                )
                continue
            seen.add(command.name)
            accepted.append(command)
        return accepted

    @property
    def commands(self) -> Tuple[CommandDescriptor, ...]:
        return self._commands

    def get(self, name: str) -> Optional[CommandDescriptor]:
        for command in self._commands:
            if command.name == name:
                return command
        return None

    def __len__(self) -> int:
        return len(self._commands)

    @staticmethod
    def partition(
        commands: Iterable[CommandDescriptor],
    ) -> Tuple[List[CommandDescriptor], List[CommandDescriptor]]:
        """Split into (dev_only, global) keeping order."""
        dev_only, global_ = [], []
        for command in commands:
            (dev_only if command.dev_only else global_).append(command)
        return dev_only, global_

    def warn_missing_audience(self) -> None:
        """Log when dev-only commands exist without anyone to use them."""
        if not any(command.dev_only for command in self._commands):
            return
        if not self.audience.guild_ids:
            logger.warning(
                "dev_commands_without_guilds",
                msg="dev_only commands will not be registered without dev guild ids",
            )
        if not self.audience.user_ids and not self.audience.role_ids:
            logger.warning(
                "dev_commands_without_developers",
                msg="dev_only commands cannot be run without dev user or role ids",
            )

    def _select(self, commands: Optional[Iterable[CommandDescriptor]]) -> Sequence[CommandDescriptor]:
        if commands is None:
            return self._commands
        return self._accept(commands)

    async def _dev_scopes(self) -> List[Tuple[Scope, str]]:
        """Resolve dev guilds, skipping ones the platform cannot reach."""
        scopes = []
        for guild_id in self.audience.guild_ids:
            try:
                guild_name = await self.platform.resolve_guild(guild_id)
            except Exception as e:
                logger.warning("dev_guild_unresolved", guild_id=guild_id, error=str(e))
                continue
            if guild_name is None:
                logger.warning(
                    "dev_guild_unresolved",
                    guild_id=guild_id,
                    msg="guild does not exist or client is not a member",
                )
                continue
            scopes.append((Scope.guild(guild_id), guild_name))
        return scopes

    # Full replace

    async def sync_full(
        self,
        commands: Optional[Iterable[CommandDescriptor]] = None,
        *,
        scope_type: Optional[str] = None,
        reloading: bool = False,
    ) -> SyncReport:
        """Replace each scope's remote commands in one call per scope.

        Commands flagged ``deleted`` are left out of the payloads, which
        removes them remotely.
        """
        _check_scope_type(scope_type)
        report = SyncReport(mode="full")
        selected = [command for command in self._select(commands) if not command.deleted]
        dev_only, global_ = self.partition(selected)

        if scope_type in (None, DEV):
            for scope, label in await self._dev_scopes():
                await self._replace(scope, label, dev_only, report, reloading)
        if scope_type in (None, GLOBAL):
            await self._replace(GLOBAL_SCOPE, GLOBAL, global_, report, reloading)
        return report

    async def _replace(
        self,
        scope: Scope,
        label: str,
        commands: Sequence[CommandDescriptor],
        report: SyncReport,
        reloading: bool,
    ) -> None:
        payloads = [command.data.to_payload() for command in commands]
        try:
            await self.platform.set_commands(scope, payloads)
        except Exception as e:
            logger.error(
                "sync_replace_failed",
                scope=str(scope),
                guild=label,
                reloading=reloading,
                error=str(e),
            )
            report.record_failure(
                SyncError(f"Bulk replace failed: {e}", action="replace", scope=str(scope))
            )
            return
        report.replaced[str(scope)] = len(payloads)
        logger.info(
            "sync_replaced",
            scope=str(scope),
            guild=label,
            count=len(payloads),
            reloading=reloading,
        )

    # Incremental diff

    async def sync_incremental(
        self,
        commands: Optional[Iterable[CommandDescriptor]] = None,
        *,
        scope_type: Optional[str] = None,
        reloading: bool = False,
    ) -> SyncReport:
        """Create, edit or delete single remote commands to match.

        Each scope's remote state is fetched once. Unchanged commands
        cause no remote call.
        """
        _check_scope_type(scope_type)
        report = SyncReport(mode="incremental")
        dev_only, global_ = self.partition(self._select(commands))

        if scope_type in (None, DEV):
            for scope, label in await self._dev_scopes():
                await self._diff_scope(scope, label, dev_only, report)
        if scope_type in (None, GLOBAL):
            await self._diff_scope(GLOBAL_SCOPE, GLOBAL, global_, report)
        logger.info("sync_finished", reloading=reloading, **report.summary())
        return report

    async def _diff_scope(
        self,
        scope: Scope,
        label: str,
        commands: Sequence[CommandDescriptor],
        report: SyncReport,
    ) -> None:
        try:
            remote = await self.platform.fetch_commands(scope)
        except Exception as e:
            logger.error("sync_fetch_failed", scope=str(scope), guild=label, error=str(e))
            report.record_failure(
                SyncError(f"Fetching remote commands failed: {e}", action="fetch", scope=str(scope))
            )
            return

        for command in commands:
            target = remote.get(command.name)
            payload = command.data.to_payload()

            if command.deleted:
                if target is None:
                    logger.info(
                        "sync_skip_deleted",
                        command=command.name,
                        scope=str(scope),
                        msg="marked as deleted and not registered",
                    )
                    report.skipped += 1
                    continue
                await self._attempt(
                    report, "delete", command.name, scope,
                    lambda: self.platform.delete_command(scope, target.id),
                )
                continue

            if target is not None:
                if are_commands_different(target, command.data, deep=self.deep_compare):
                    await self._attempt(
                        report, "edit", command.name, scope,
                        lambda: self.platform.edit_command(scope, target.id, payload),
                    )
                else:
                    report.unchanged += 1
                continue

            await self._attempt(
                report, "create", command.name, scope,
                lambda: self.platform.create_command(scope, payload),
            )

    async def _attempt(
        self,
        report: SyncReport,
        action: str,
        command_name: str,
        scope: Scope,
        call: Callable[[], Awaitable[Any]],
    ) -> bool:
        try:
            await call()
        except Exception as e:
            logger.error(
                "sync_command_failed",
                action=action,
                command=command_name,
                scope=str(scope),
                error=str(e),
            )
            report.record_failure(
                SyncError(
                    f"Failed to {action} command: {e}",
                    command_name=command_name,
                    action=action,
                    scope=str(scope),
                )
            )
            return False
        counter = {"create": "created", "edit": "edited", "delete": "deleted"}[action]
        setattr(report, counter, getattr(report, counter) + 1)
        logger.info("sync_command_" + counter, command=command_name, scope=str(scope))
        return True

    # Removal

    async def unregister_all(self, scope_type: Optional[str] = None) -> SyncReport:
        """Remove every registered command from the selected scopes."""
        _check_scope_type(scope_type)
        report = SyncReport(mode="clear")
        if scope_type in (None, DEV):
            for scope, label in await self._dev_scopes():
                await self._replace(scope, label, [], report, reloading=False)
        if scope_type in (None, GLOBAL):
            await self._replace(GLOBAL_SCOPE, GLOBAL, [], report, reloading=False)
        return report

    async def unregister(self, command_id: str, scope: Scope = GLOBAL_SCOPE) -> bool:
        """Delete one registered command by id. Returns False on failure."""
        try:
            await self.platform.delete_command(scope, command_id)
        except Exception as e:
            logger.error(
                "sync_unregister_failed", command_id=command_id, scope=str(scope), error=str(e)
            )
            return False
        logger.info("sync_unregistered", command_id=command_id, scope=str(scope))
        return True
