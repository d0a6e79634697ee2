"""Custom exception hierarchy for handlerkit.

Provides error classification across the loader, sync and routing
subsystems so call sites can tell configuration mistakes from
transient platform failures.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    """Classification of errors for retry decisions."""
    TRANSIENT = "transient"          # Worth retrying (timeout, rate limit, 5xx)
    PERMANENT = "permanent"          # Not worth retrying (bad payload, 4xx)
    INFRASTRUCTURE = "infrastructure"  # Missing paths, env issues


class HandlerKitError(Exception):
    """Base exception for all handlerkit errors.

    Attributes:
        message: Human-readable error description.
        category: Error classification for retry/escalation decisions.
        module: Originating module name (e.g. "commands.registry").
        context: Arbitrary key-value pairs for structured logging.
    """

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.message = message
        self.category = category
        self.module = module
        self.context = context
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Whether this error is worth retrying."""
        return self.category == ErrorCategory.TRANSIENT

    def __str__(self) -> str:
        parts = [self.message or self.__class__.__name__]
        if self.module:
            parts.append(f"[module={self.module}]")
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"({ctx})")
        return " ".join(parts)

    def __repr__(self) -> str:
        cls = self.__class__.__name__
        return (
            f"{cls}({self.message!r}, category={self.category.value!r}, "
            f"module={self.module!r})"
        )


class ConfigurationError(HandlerKitError):
    """Invalid or missing configuration.

    Raised when a reload is requested for a category whose root
    directory was never configured, or when constructor options
    contradict each other.
    """

    def __init__(
        self,
        message: str = "",
        *,
        setting_name: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.INFRASTRUCTURE,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.setting_name = setting_name
        super().__init__(
            message, category=category, module=module or "config", **context
        )


class PreconditionError(HandlerKitError):
    """An operation was requested before its prerequisites were met.

    Example: reloading commands while the platform client is not ready.
    """

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        super().__init__(
            message, category=category, module=module or "orchestrator", **context
        )


class ModuleLoadError(HandlerKitError):
    """A handler module could not be imported.

    Attributes:
        path: Filesystem path of the module that failed.
    """

    def __init__(
        self,
        message: str = "",
        *,
        path: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.path = path
        super().__init__(
            message, category=category, module=module or "loader", **context
        )


class PlatformError(HandlerKitError):
    """The remote command platform rejected or failed a request.

    Attributes:
        status: HTTP status code (if the failure came from a response).
    """

    def __init__(
        self,
        message: str = "",
        *,
        status: Optional[int] = None,
        category: Optional[ErrorCategory] = None,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.status = status
        if category is None:
            if status is not None and (status == 429 or status >= 500):
                category = ErrorCategory.TRANSIENT
            else:
                category = ErrorCategory.PERMANENT
        super().__init__(
            message, category=category, module=module or "platform", **context
        )


class SyncError(HandlerKitError):
    """A command synchronization step failed.

    Attributes:
        command_name: The command involved (if any).
        action: "create", "edit", "delete", "replace" or "fetch".
    """

    def __init__(
        self,
        message: str = "",
        *,
        command_name: Optional[str] = None,
        action: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.command_name = command_name
        self.action = action
        super().__init__(
            message, category=category, module=module or "commands.registry", **context
        )
