"""Builds command descriptors from the modules under the commands root.

A command module exposes ``data``, ``run`` and optionally
``autocomplete`` and ``options``, either at module level or on a
``handler`` object. Modules that fail the contract are skipped with a
warning; the rest of the directory still loads.
"""

from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, ValidationError

from ..logging_config import get_logger
from ..module_loader import LoadedModule, ModuleLoader, PathLike, compact_path
from .base import CommandData, CommandDescriptor, CommandOptions

logger = get_logger("commands")


def coerce_command_data(raw: Any) -> CommandData:
    """Convert a module's ``data`` export into ``CommandData``.

    Accepts a dict, a pydantic model, or any object with ``to_dict()``.

    Raises:
        TypeError: ``raw`` is none of the accepted shapes.
        pydantic.ValidationError: The fields have the wrong types.
    """
    if isinstance(raw, CommandData):
        return raw
    if isinstance(raw, BaseModel):
        raw = raw.model_dump(exclude_none=True)
    elif callable(getattr(raw, "to_dict", None)):
        raw = raw.to_dict()
    if not isinstance(raw, dict):
        raise TypeError(f"unsupported data type {type(raw).__name__}")
    return CommandData.model_validate(raw)


def coerce_command_options(raw: Any) -> CommandOptions:
    if raw is None:
        return CommandOptions()
    if isinstance(raw, CommandOptions):
        return raw
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    return CommandOptions.model_validate(raw)


def command_category(file_path: Path, commands_path: Path) -> Optional[str]:
    """First directory below the commands root, or None for root-level files."""
    try:
        relative = file_path.relative_to(commands_path)
    except ValueError:
        return None
    parts = relative.parts
    return parts[0] if len(parts) > 1 else None


def build_command(record: LoadedModule, commands_path: Path) -> Optional[CommandDescriptor]:
    """Build one descriptor, or return None (with a warning) if invalid."""
    source = record.export
    location = compact_path(record.path)

    raw_data = getattr(source, "data", None)
    if raw_data is None:
        logger.warning("command_skipped", path=location, reason='does not export "data"')
        return None
    try:
        data = coerce_command_data(raw_data)
    except (TypeError, ValidationError) as e:
        logger.warning("command_skipped", path=location, reason="invalid data", error=str(e))
        return None
    if not data.name:
        logger.warning("command_skipped", path=location, reason='does not export "data.name"')
        return None

    run = getattr(source, "run", None)
    if run is None:
        logger.warning("command_skipped", command=data.name, reason='does not export "run"')
        return None
    if not callable(run):
        logger.warning(
            "command_skipped", command=data.name, reason='"run" is not a function'
        )
        return None

    autocomplete = getattr(source, "autocomplete", None)
    if autocomplete is not None and not callable(autocomplete):
        logger.warning("command_autocomplete_ignored", command=data.name)
        autocomplete = None

    try:
        options = coerce_command_options(getattr(source, "options", None))
    except ValidationError as e:
        logger.warning("command_skipped", command=data.name, reason="invalid options", error=str(e))
        return None

    if options.guild_only:
        logger.warning(
            "command_option_deprecated",
            command=data.name,
            option="guild_only",
            replacement="data.dm_permission",
        )

    return CommandDescriptor(
        data=data,
        run=run,
        autocomplete=autocomplete,
        options=options,
        category=command_category(record.path, commands_path),
        file_path=record.path,
    )


def build_commands(commands_path: PathLike, loader: Optional[ModuleLoader] = None) -> List[CommandDescriptor]:
    """Load every command module under ``commands_path``.

    Returns descriptors in discovery order. Modules that fail to import
    or do not satisfy the command contract are skipped.
    """
    loader = loader or ModuleLoader()
    root = Path(commands_path).resolve()
    commands = []
    for record in loader.load_directory(root, recurse=True):
        command = build_command(record, root)
        if command is not None:
            commands.append(command)
    logger.info("commands_built", path=compact_path(root), count=len(commands))
    return commands
