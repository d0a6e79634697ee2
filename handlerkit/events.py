"""Event handler discovery and ordered dispatch.

Each sub-directory of the events root names one event; every handler
file below it (recursively) contributes one callable. The bus attaches
exactly one listener per event name to the event source. On emission
the handlers run one after another until one returns a stopping
``Outcome``.

Key classes:
    EventDescriptor: Event name plus its ordered handlers.
    DispatchResult: Outcome of one dispatch.
    EventBus: Builds, binds, dispatches and rebuilds.
"""

import inspect
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .emitter import EventEmitter, Listener
from .exceptions import ConfigurationError
from .logging_config import get_logger
from .module_loader import ModuleLoader, PathLike, compact_path, get_folder_paths
from .outcome import Outcome

logger = get_logger("events")


@dataclass(frozen=True)
class EventDescriptor:
    """One event name and the handlers bound to it, in discovery order."""
    name: str
    handlers: Tuple[Callable[..., Any], ...] = ()


@dataclass(frozen=True)
class DispatchResult:
    event_name: str
    outcome: Outcome
    handlers_run: int


def _handler_name(handler: Callable[..., Any]) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


def build_events(events_path: PathLike, loader: Optional[ModuleLoader] = None) -> List[EventDescriptor]:
    """One descriptor per event folder under ``events_path``.

    Handler files whose export is not callable are skipped.
    """
    loader = loader or ModuleLoader()
    # Handlers of removed event folders
    loader.prune(events_path, loader.discover(events_path))
    descriptors = []
    for folder in get_folder_paths(events_path):
        handlers = []
        for record in loader.load_directory(folder, recurse=True):
            if not callable(record.export):
                logger.warning(
                    "event_handler_skipped",
                    event_name=folder.name,
                    path=compact_path(record.path),
                    reason="does not export a function",
                )
                continue
            handlers.append(record.export)
        descriptors.append(EventDescriptor(name=folder.name, handlers=tuple(handlers)))
    logger.info("events_built", path=str(events_path), events=len(descriptors))
    return descriptors


class EventBus:
    """Binds event descriptors to an event source.

    Handlers are called as ``handler(*event_args, *extra_args)``; the
    orchestrator passes ``(client, kit)`` as extra args.

    Args:
        source: Event source to attach listeners to.
        extra_args: Trailing arguments passed to every handler.
        loader: Module loader used to import handler files.
    """

    def __init__(
        self,
        source: EventEmitter,
        *,
        extra_args: Sequence[Any] = (),
        loader: Optional[ModuleLoader] = None,
    ):
        self.source = source
        self.extra_args = tuple(extra_args)
        self.loader = loader or ModuleLoader()
        self.events_path: Optional[Path] = None
        self._events: Dict[str, EventDescriptor] = {}
        self._listeners: Dict[str, Listener] = {}

    @property
    def events(self) -> List[EventDescriptor]:
        return list(self._events.values())

    @property
    def bound_event_names(self) -> List[str]:
        return list(self._listeners)

    def build(self, events_path: Optional[PathLike] = None) -> List[EventDescriptor]:
        """Load descriptors from ``events_path`` (or the last used path)."""
        if events_path is not None:
            self.events_path = Path(events_path)
        if self.events_path is None:
            raise ConfigurationError(
                'Cannot build events as "events_path" was not provided.',
                setting_name="events_path",
                module="events",
            )
        return build_events(self.events_path, self.loader)

    def bind(self, event_name: str, handlers: Iterable[Callable[..., Any]]) -> None:
        """Attach one listener for ``event_name`` running ``handlers``.

        Re-binding a name replaces the previous listener of this bus.
        """
        descriptor = EventDescriptor(name=event_name, handlers=tuple(handlers))
        self._detach(event_name)

        async def listener(*args):
            return await self._run(descriptor, args)

        self._events[event_name] = descriptor
        self._listeners[event_name] = listener
        self.source.on(event_name, listener)
        logger.debug("event_bound", event_name=event_name, handlers=len(descriptor.handlers))

    def bind_all(self, descriptors: Iterable[EventDescriptor]) -> None:
        for descriptor in descriptors:
            self.bind(descriptor.name, descriptor.handlers)

    def _detach(self, event_name: str) -> None:
        listener = self._listeners.pop(event_name, None)
        if listener is not None:
            self.source.off(event_name, listener)
        self._events.pop(event_name, None)

    def unbind_all(self) -> None:
        """Detach every listener this bus attached. Others are untouched."""
        for event_name in list(self._listeners):
            self._detach(event_name)

    def init(self, events_path: PathLike) -> List[EventDescriptor]:
        """Build from ``events_path`` and bind every event."""
        descriptors = self.build(events_path)
        self.bind_all(descriptors)
        return descriptors

    def rebuild(self) -> List[EventDescriptor]:
        """Reload handler files and rebind, replacing this bus's listeners.

        Raises:
            ConfigurationError: No events path was ever provided.
        """
        descriptors = self.build()
        self.unbind_all()
        self.bind_all(descriptors)
        logger.info("events_reloaded", events=len(descriptors))
        return descriptors

    async def dispatch(self, event_name: str, *args: Any) -> DispatchResult:
        """Run the handlers of ``event_name`` directly, without the source."""
        descriptor = self._events.get(event_name)
        if descriptor is None:
            return DispatchResult(event_name, Outcome.CONTINUE, 0)
        return await self._run(descriptor, args)

    async def _run(self, descriptor: EventDescriptor, args: Tuple[Any, ...]) -> DispatchResult:
        handlers_run = 0
        for handler in descriptor.handlers:
            handlers_run += 1
            try:
                result = handler(*args, *self.extra_args)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                logger.error(
                    "event_handler_failed",
                    event_name=descriptor.name,
                    handler=_handler_name(handler),
                    error=str(e),
                    exc_info=True,
                )
                return DispatchResult(descriptor.name, Outcome.STOP_ERROR, handlers_run)
            outcome = Outcome.from_result(result)
            if outcome.stops:
                logger.debug(
                    "event_chain_stopped",
                    event_name=descriptor.name,
                    handler=_handler_name(handler),
                    outcome=outcome.value,
                )
                return DispatchResult(descriptor.name, outcome, handlers_run)
        return DispatchResult(descriptor.name, Outcome.CONTINUE, handlers_run)
