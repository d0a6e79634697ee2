"""Three-way result shared by event handlers and validation checks.

Handlers return ``Outcome.CONTINUE`` to let the chain proceed,
``Outcome.STOP`` to end it after handling the input, or
``Outcome.STOP_ERROR`` to end it because something went wrong.
"""

from enum import Enum
from typing import Any


class Outcome(str, Enum):
    """Control signal returned by a chained handler."""
    CONTINUE = "continue"
    STOP = "stop"
    STOP_ERROR = "stop_error"

    @property
    def stops(self) -> bool:
        return self is not Outcome.CONTINUE

    @classmethod
    def from_result(cls, value: Any) -> "Outcome":
        """Normalize a handler's return value.

        ``None`` and ``False`` continue, ``True`` stops. Other values
        are treated by truthiness, so a handler that returns the reply
        it sent still ends the chain.
        """
        if isinstance(value, Outcome):
            return value
        if value is None:
            return cls.CONTINUE
        return cls.STOP if value else cls.CONTINUE
