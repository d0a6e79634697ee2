"""Command descriptors, loading, and platform synchronization."""

from .base import (
    CommandContext,
    CommandData,
    CommandDescriptor,
    CommandOptions,
    DevAudience,
    ValidationContext,
)
from .loader import build_command, build_commands
from .registry import CommandRegistry, SyncReport, are_commands_different

__all__ = [
    "CommandContext",
    "CommandData",
    "CommandDescriptor",
    "CommandOptions",
    "CommandRegistry",
    "DevAudience",
    "SyncReport",
    "ValidationContext",
    "are_commands_different",
    "build_command",
    "build_commands",
]
