"""Synchronous signals and effects.

A signal holds one value. Reading it inside a running effect subscribes
that effect; writing it re-runs every subscriber immediately. Effects
track the running observer on an explicit ``ObserverStack`` so separate
domains (and tests) never share state.

There is no batching, memoization or cycle detection: an effect that
writes a signal it reads will recurse.

Usage:
    read, write, dispose = create_signal(0)
    create_effect(lambda: print(read()))   # prints 0
    write(lambda n: n + 1)                 # prints 1
"""

from contextlib import contextmanager
from typing import Any, Callable, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar

from .logging_config import get_logger

logger = get_logger("reactive")

T = TypeVar("T")

Observer = Callable[[], Any]


class ObserverStack:
    """Stack of currently running effects. Top is the active observer."""

    def __init__(self):
        self._observers: List[Observer] = []

    def push(self, observer: Observer) -> None:
        self._observers.append(observer)

    def pop(self) -> Observer:
        return self._observers.pop()

    @property
    def current(self) -> Optional[Observer]:
        return self._observers[-1] if self._observers else None

    def __len__(self) -> int:
        return len(self._observers)

    @contextmanager
    def observing(self, observer: Observer) -> Iterator[None]:
        """Make ``observer`` current for the duration of the block."""
        self.push(observer)
        try:
            yield
        finally:
            self.pop()


class Signal(Generic[T]):
    """A reactive cell.

    Args:
        initial: Initial value, or a zero-argument factory producing it.
        stack: Observer stack used to find the running effect.
    """

    def __init__(self, initial: Any, stack: ObserverStack):
        self._stack = stack
        self._value: T = initial() if callable(initial) else initial
        # dict as an insertion-ordered set
        self._subscribers: Dict[Observer, None] = {}
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def read(self) -> T:
        if not self._disposed:
            observer = self._stack.current
            if observer is not None:
                self._subscribers[observer] = None
        return self._value

    def write(self, value: Any) -> None:
        """Set a new value (or apply an updater) and notify subscribers."""
        if self._disposed:
            return
        self._value = value(self._value) if callable(value) else value
        for subscriber in list(self._subscribers):
            subscriber()

    def dispose(self) -> None:
        self._subscribers.clear()
        self._disposed = True
        logger.debug("signal_disposed")


class Effect:
    """Re-runnable observer wrapping a zero-argument body."""

    def __init__(self, body: Callable[[], Any], stack: ObserverStack):
        self._body = body
        self._stack = stack
        self.runs = 0

    def __call__(self) -> None:
        with self._stack.observing(self):
            self.runs += 1
            self._body()


class ReactiveDomain:
    """One observer stack with its signal and effect factories."""

    def __init__(self, stack: Optional[ObserverStack] = None):
        self.stack = stack if stack is not None else ObserverStack()

    def create_signal(
        self, initial: Any
    ) -> Tuple[Callable[[], Any], Callable[[Any], None], Callable[[], None]]:
        """Return ``(read, write, dispose)`` for a new signal."""
        signal: Signal = Signal(initial, self.stack)
        return signal.read, signal.write, signal.dispose

    def create_effect(self, body: Callable[[], Any]) -> Effect:
        """Run ``body`` now and again whenever a signal it read changes."""
        effect = Effect(body, self.stack)
        effect()
        return effect


_default_domain = ReactiveDomain()


def _domain(stack: Optional[ObserverStack]) -> ReactiveDomain:
    return _default_domain if stack is None else ReactiveDomain(stack)


def create_signal(initial: Any, *, stack: Optional[ObserverStack] = None):
    """Module-level ``ReactiveDomain.create_signal`` on the default stack."""
    return _domain(stack).create_signal(initial)


def create_effect(body: Callable[[], Any], *, stack: Optional[ObserverStack] = None) -> Effect:
    """Module-level ``ReactiveDomain.create_effect`` on the default stack."""
    return _domain(stack).create_effect(body)
