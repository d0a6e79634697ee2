"""Ordered validation checks run before every command invocation.

Built-in checks run first (unless skipped), then user checks loaded
from the validations root in discovery order. The first check that
returns a stopping ``Outcome`` vetoes the invocation. A check that
raises is logged and counts as a veto.
"""

import inspect
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple

from ..commands.base import ValidationContext
from ..exceptions import ConfigurationError
from ..logging_config import get_logger
from ..module_loader import ModuleLoader, PathLike, compact_path
from ..outcome import Outcome
from .builtin import BUILTIN_VALIDATIONS

logger = get_logger("validations")

ValidationFunction = Callable[[ValidationContext], Any]


def _check_name(check: ValidationFunction) -> str:
    return getattr(check, "__qualname__", None) or repr(check)


def build_validations(
    validations_path: PathLike, loader: Optional[ModuleLoader] = None
) -> List[ValidationFunction]:
    """Load every validation module under ``validations_path``."""
    loader = loader or ModuleLoader()
    checks = []
    for record in loader.load_directory(validations_path, recurse=True):
        if not callable(record.export):
            logger.warning(
                "validation_skipped",
                path=compact_path(record.path),
                reason="does not export a function",
            )
            continue
        checks.append(record.export)
    logger.info("validations_built", path=str(validations_path), count=len(checks))
    return checks


class ValidationPipeline:
    """Built-in and user checks, run in order for each interaction.

    Args:
        loader: Module loader used to import validation files.
        builtins: Checks that run before user checks.
        skip_builtins: Run only user checks.
    """

    def __init__(
        self,
        *,
        loader: Optional[ModuleLoader] = None,
        builtins: Sequence[ValidationFunction] = BUILTIN_VALIDATIONS,
        skip_builtins: bool = False,
    ):
        self.loader = loader or ModuleLoader()
        self.builtins = tuple(builtins)
        self.skip_builtins = skip_builtins
        self.validations_path: Optional[Path] = None
        self._validations: Tuple[ValidationFunction, ...] = ()

    @property
    def validations(self) -> Tuple[ValidationFunction, ...]:
        """User checks currently in effect."""
        return self._validations

    def checks(self) -> Tuple[ValidationFunction, ...]:
        """Every check in run order."""
        if self.skip_builtins:
            return self._validations
        return self.builtins + self._validations

    def load(self, validations_path: PathLike) -> Tuple[ValidationFunction, ...]:
        """Build user checks from ``validations_path`` and swap them in."""
        self.validations_path = Path(validations_path)
        self._validations = tuple(build_validations(self.validations_path, self.loader))
        return self._validations

    def reload(self) -> Tuple[ValidationFunction, ...]:
        """Rebuild user checks from the last loaded path.

        Raises:
            ConfigurationError: ``load`` was never called.
        """
        if self.validations_path is None:
            raise ConfigurationError(
                'Cannot reload validations as "validations_path" was not provided.',
                setting_name="validations_path",
                module="validations",
            )
        validations = self.load(self.validations_path)
        logger.info("validations_reloaded", count=len(validations))
        return validations

    async def run(self, context: ValidationContext) -> bool:
        """Return True if the invocation may proceed."""
        is_autocomplete = context.interaction.is_autocomplete
        for check in self.checks():
            if is_autocomplete and not getattr(check, "autocomplete_aware", False):
                continue
            try:
                result = check(context)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                logger.error(
                    "validation_failed",
                    check=_check_name(check),
                    command=context.command.name,
                    error=str(e),
                    exc_info=True,
                )
                return False
            if Outcome.from_result(result).stops:
                logger.debug(
                    "validation_vetoed",
                    check=_check_name(check),
                    command=context.command.name,
                )
                return False
        return True
