"""Handler module discovery, loading, and hot reload.

Handler modules (commands, event handlers, validations) are plain
Python files under a configured root directory. They are loaded by
path rather than by import name. Their loader compiles the source text
on every load and never reads cached bytecode, so a reload always sees
the file as it is on disk.

Loaded modules are tracked in an explicit registry keyed by resolved
path. ``reload(path)`` replaces the record for that path in place and
bumps its generation; the synthetic ``sys.modules`` entry for the path
is evicted before each load so no stale copy can be picked up.
"""

import hashlib
import importlib.machinery
import importlib.util
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, Iterable, List, Optional, Union

from .exceptions import ModuleLoadError
from .logging_config import get_logger

logger = get_logger("loader")

SUPPORTED_EXTENSIONS = frozenset({".py"})

# Attribute treated as a module's "default export"
EXPORT_ATTR = "handler"

# Prefix for the synthetic module names of loaded handler files
MODULE_PREFIX = "handlerkit_module"

PathLike = Union[str, Path]


@dataclass
class LoadedModule:
    """Registry record for one loaded handler file.

    Attributes:
        path: Resolved filesystem path.
        module: The freshly executed module object.
        export: ``module.handler`` if defined, otherwise the module.
        generation: Load counter for this path (1 on first load).
    """
    path: Path
    module: ModuleType
    export: Any
    generation: int


class FreshSourceLoader(importlib.machinery.SourceFileLoader):
    """Source loader that skips the bytecode cache."""

    def get_code(self, fullname):
        return self.source_to_code(self.get_data(self.path), self.path)


def _is_candidate(entry: Path) -> bool:
    return not entry.name.startswith(("_", "."))


def _list_dir(directory: Path) -> List[Path]:
    try:
        return sorted(directory.iterdir())
    except OSError as e:
        logger.warning("loader_directory_unreadable", path=str(directory), error=str(e))
        return []


def get_file_paths(
    directory: Optional[PathLike],
    recurse: bool = True,
    extensions: Iterable[str] = SUPPORTED_EXTENSIONS,
) -> List[Path]:
    """List handler files under ``directory`` in discovery order.

    Entries are visited in sorted order; with ``recurse`` each
    sub-directory is descended into where it sorts. Names starting with
    ``_`` or ``.`` are ignored, which skips ``__init__.py`` and
    ``__pycache__``. A missing or unreadable directory yields ``[]``.
    """
    if not directory:
        return []
    extensions = {ext.lower() for ext in extensions}
    file_paths: List[Path] = []
    for entry in _list_dir(Path(directory)):
        if not _is_candidate(entry):
            continue
        if entry.is_file() and entry.suffix.lower() in extensions:
            file_paths.append(entry.resolve())
        elif recurse and entry.is_dir():
            file_paths.extend(get_file_paths(entry, True, extensions))
    return file_paths


def get_folder_paths(directory: Optional[PathLike], recurse: bool = False) -> List[Path]:
    """List sub-directories of ``directory`` in sorted order."""
    if not directory:
        return []
    folder_paths: List[Path] = []
    for entry in _list_dir(Path(directory)):
        if not _is_candidate(entry) or not entry.is_dir():
            continue
        folder_paths.append(entry.resolve())
        if recurse:
            folder_paths.extend(get_folder_paths(entry, True))
    return folder_paths


def module_name_for(path: Path) -> str:
    """Stable synthetic module name for a handler file path."""
    digest = hashlib.sha1(str(path).encode("utf-8")).hexdigest()[:12]
    stem = re.sub(r"\W", "_", path.stem)
    return f"{MODULE_PREFIX}_{stem}_{digest}"


def resolve_export(module: ModuleType) -> Any:
    """Return the module's default export, or the module itself."""
    return getattr(module, EXPORT_ATTR, module)


def compact_path(path: Path) -> str:
    """Path relative to the working directory when possible, for logs."""
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


class ModuleLoader:
    """Loads handler files by path and tracks them in a registry.

    Args:
        extensions: File suffixes considered handler modules.
    """

    def __init__(self, extensions: Iterable[str] = SUPPORTED_EXTENSIONS):
        self.extensions = frozenset(ext.lower() for ext in extensions)
        self._records: Dict[Path, LoadedModule] = {}

    def discover(self, directory: Optional[PathLike], recurse: bool = True) -> List[Path]:
        """List handler files under ``directory``."""
        return get_file_paths(directory, recurse, self.extensions)

    def load(self, path: PathLike) -> LoadedModule:
        """Load (or re-load) a handler file and record it.

        Raises:
            ModuleLoadError: The file could not be read, compiled, or
                raised while executing.
        """
        path = Path(path).resolve()
        module_name = module_name_for(path)

        # Evict any previous copy before executing the new source
        sys.modules.pop(module_name, None)

        spec = importlib.util.spec_from_file_location(
            module_name, path, loader=FreshSourceLoader(module_name, str(path))
        )
        if spec is None:
            raise ModuleLoadError("Unsupported handler file", path=str(path))
        module = importlib.util.module_from_spec(spec)

        try:
            sys.modules[module_name] = module
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise ModuleLoadError(
                f"Failed to load handler module: {e}",
                path=str(path),
                error_type=type(e).__name__,
            ) from e

        previous = self._records.get(path)
        record = LoadedModule(
            path=path,
            module=module,
            export=resolve_export(module),
            generation=previous.generation + 1 if previous else 1,
        )
        self._records[path] = record
        logger.debug(
            "module_loaded",
            path=compact_path(path),
            generation=record.generation,
        )
        return record

    def reload(self, path: PathLike) -> LoadedModule:
        """Replace the record of an already loaded path.

        Raises:
            KeyError: The path was never loaded.
        """
        resolved = Path(path).resolve()
        if resolved not in self._records:
            raise KeyError(f"Module {resolved} has not been loaded")
        return self.load(resolved)

    def load_all(self, paths: Iterable[PathLike]) -> List[LoadedModule]:
        """Load several files, skipping (and logging) any that fail."""
        records = []
        for path in paths:
            try:
                records.append(self.load(path))
            except ModuleLoadError as e:
                logger.error(
                    "module_load_failed",
                    path=e.path,
                    error=e.message,
                    error_type=e.context.get("error_type"),
                )
        return records

    def load_directory(self, directory: Optional[PathLike], recurse: bool = True) -> List[LoadedModule]:
        """Discover and load every handler file under ``directory``.

        Records under ``directory`` whose file is no longer discovered
        are forgotten.
        """
        paths = self.discover(directory, recurse)
        if directory:
            self.prune(directory, paths, recurse)
        return self.load_all(paths)

    def prune(self, directory: PathLike, keep: Iterable[PathLike], recurse: bool = True) -> List[Path]:
        """Forget records under ``directory`` that are not in ``keep``.

        Returns the forgotten paths.
        """
        root = Path(directory).resolve()
        kept = {Path(path).resolve() for path in keep}
        stale = [
            path for path in self._records
            if path not in kept
            and (path.is_relative_to(root) if recurse else path.parent == root)
        ]
        for path in stale:
            self.forget(path)
            logger.info("module_forgotten", path=compact_path(path), reason="file removed")
        return stale

    def get(self, path: PathLike) -> Optional[LoadedModule]:
        return self._records.get(Path(path).resolve())

    def forget(self, path: PathLike) -> bool:
        """Drop a path from the registry and evict its module."""
        resolved = Path(path).resolve()
        record = self._records.pop(resolved, None)
        if record is None:
            return False
        sys.modules.pop(module_name_for(resolved), None)
        return True

    @property
    def records(self) -> List[LoadedModule]:
        return list(self._records.values())
