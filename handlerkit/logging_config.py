"""Logging for handlerkit.

Every module logs through ``get_logger(<subsystem>)``, which names a
stdlib logger ``handlerkit.<subsystem>``. ``setup_logging`` attaches:

    root                      console, rendered key=value
      handlerkit              handlerkit.log (JSON lines, all subsystems)
        handlerkit.<subsystem>  <subsystem>.log (JSON lines)

Bot tokens are masked by ``sanitize_secrets`` before any renderer sees
the event, for structlog and plain stdlib records alike.
"""

import logging
import logging.handlers
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

LOGGER_PREFIX = "handlerkit"

SUBSYSTEMS = ("config", "loader", "commands", "events", "validations", "sync", "reactive")

_SECRET_PATTERNS = [
    # Authorization header values ("Bot <token>" / "Bearer <token>")
    re.compile(r"(?:Bot|Bearer)\s+[A-Za-z0-9_./-]{20,}"),
    # Discord bot tokens: base64 user id . timestamp . hmac
    re.compile(r"[MNO][A-Za-z\d_-]{23,27}\.[A-Za-z\d_-]{6}\.[A-Za-z\d_-]{27,40}"),
]

_REDACTED = "***REDACTED***"


def get_logger(subsystem: str):
    """Return the structlog logger of one handlerkit subsystem.

    Raises:
        ValueError: ``subsystem`` has no log file of its own.
    """
    if subsystem not in SUBSYSTEMS:
        raise ValueError(f"Unknown log subsystem {subsystem!r}, expected one of {SUBSYSTEMS}")
    return structlog.get_logger(f"{LOGGER_PREFIX}.{subsystem}")


def _scrub_value(value: str) -> str:
    for pattern in _SECRET_PATTERNS:
        value = pattern.sub(_REDACTED, value)
    return value


def _scrub(value: Any) -> Any:
    if isinstance(value, str):
        return _scrub_value(value)
    if isinstance(value, (list, tuple)):
        return type(value)(_scrub_value(v) if isinstance(v, str) else v for v in value)
    if isinstance(value, dict):
        return {k: _scrub_value(v) if isinstance(v, str) else v for k, v in value.items()}
    return value


def sanitize_secrets(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """structlog processor that masks bot tokens.

    String values are scrubbed, and so are strings one level inside
    lists, tuples and dicts.
    """
    for key, value in event_dict.items():
        event_dict[key] = _scrub(value)
    return event_dict


@dataclass
class LogSettings:
    """Resolved logging options. ``log_dir`` None means console only."""
    level: int = logging.INFO
    log_dir: Optional[Path] = None
    subsystem_levels: Dict[str, int] = field(default_factory=dict)
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5
    cache_loggers: bool = False

    @classmethod
    def from_config(cls, config) -> "LogSettings":
        level = _level(config.logging_level, logging.INFO)
        subsystem_levels = {}
        for name, value in (config.logging_subsystem_levels or {}).items():
            if name not in SUBSYSTEMS:
                print(
                    f"WARNING: logging.subsystem_levels.{name} ignored, "
                    f"known subsystems are {', '.join(SUBSYSTEMS)}",
                    file=sys.stderr,
                )
                continue
            subsystem_levels[name] = _level(value, level)
        return cls(
            level=level,
            log_dir=Path(config.log_dir),
            subsystem_levels=subsystem_levels,
            max_bytes=config.logging_max_file_size_mb * 1024 * 1024,
            backup_count=config.logging_backup_count,
            cache_loggers=True,
        )

    def level_for(self, subsystem: str) -> int:
        return self.subsystem_levels.get(subsystem, self.level)


def _level(name: Any, default: int) -> int:
    level = logging.getLevelName(str(name or "").upper())
    return level if isinstance(level, int) else default


def _shared_processors() -> List[Any]:
    return [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        sanitize_secrets,
    ]


def _formatter(renderer: Any) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )


def _file_handler(path: Path, level: int, settings: LogSettings) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=settings.max_bytes,
        backupCount=settings.backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
    return handler


def _reset(logger: logging.Logger) -> None:
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()


def _prepare_log_dir(settings: LogSettings) -> Optional[Path]:
    if settings.log_dir is None:
        return None
    try:
        settings.log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        print(
            f"WARNING: Cannot create log directory {settings.log_dir}: {exc}. "
            "Logging to the console only.",
            file=sys.stderr,
        )
        return None
    return settings.log_dir


def setup_logging(config=None) -> None:
    """Configure stdlib handlers and structlog for handlerkit.

    Called once without a config at startup (console only, loggers not
    cached) and again once the Config is loaded, which adds the log
    files and per-subsystem levels.
    """
    settings = LogSettings.from_config(config) if config is not None else LogSettings()
    log_dir = _prepare_log_dir(settings)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(settings.level)
    console_handler.setFormatter(_formatter(structlog.dev.ConsoleRenderer(colors=False)))
    root_logger.addHandler(console_handler)

    kit_logger = logging.getLogger(LOGGER_PREFIX)
    kit_logger.setLevel(logging.DEBUG)
    kit_logger.propagate = True
    _reset(kit_logger)
    if log_dir is not None:
        kit_logger.addHandler(
            _file_handler(log_dir / f"{LOGGER_PREFIX}.log", settings.level, settings)
        )

    for subsystem in SUBSYSTEMS:
        level = settings.level_for(subsystem)
        sub_logger = logging.getLogger(f"{LOGGER_PREFIX}.{subsystem}")
        sub_logger.setLevel(level)
        sub_logger.propagate = True
        _reset(sub_logger)
        if log_dir is not None:
            sub_logger.addHandler(_file_handler(log_dir / f"{subsystem}.log", level, settings))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=settings.cache_loggers,
    )
