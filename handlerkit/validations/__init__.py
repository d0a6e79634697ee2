"""Validation checks run before command invocation."""

from .builtin import (
    BUILTIN_VALIDATIONS,
    autocomplete_aware,
    dev_only_check,
    humanize_permission,
    permissions_check,
)
from .pipeline import ValidationPipeline, build_validations

__all__ = [
    "BUILTIN_VALIDATIONS",
    "ValidationPipeline",
    "autocomplete_aware",
    "build_validations",
    "dev_only_check",
    "humanize_permission",
    "permissions_check",
]
