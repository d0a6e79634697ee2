"""Configuration management for handlerkit.

Loads YAML settings (settings.yaml) and environment variables (.env)
into a typed Config object. Property getters provide safe access with
defaults for the handler directories, developer audience, command
sync behavior, the Discord REST platform, and logging.

Key classes:
    Config: Central configuration manager.

Key functions:
    get_config: Singleton accessor for the global Config instance.
"""

import os
from pathlib import Path
from typing import List, Optional

import yaml
from dotenv import load_dotenv

from .logging_config import get_logger

logger = get_logger("config")

# Discord epoch (2015-01-01T00:00:00Z) in milliseconds
DISCORD_EPOCH = 1420070400000

DEFAULT_API_BASE_URL = "https://discord.com/api/v10"


def _split_ids(raw) -> List[str]:
    """Normalize a comma-separated string or list of ids into a list."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return [str(item).strip() for item in raw if str(item).strip()]
    return [part.strip() for part in str(raw).split(",") if part.strip()]


def snowflake_timestamp(snowflake: str) -> Optional[int]:
    """Return the unix-ms creation time encoded in a snowflake id.

    Returns None when the value is not an integer.
    """
    try:
        return (int(snowflake) >> 22) + DISCORD_EPOCH
    except (TypeError, ValueError):
        return None


class Config:
    """Central configuration manager for handlerkit.

    Loads settings.yaml and .env from the config directory. The
    ``TEST_SERVERS`` and ``OWNER_IDS`` environment variables take
    precedence over their settings.yaml counterparts.

    Args:
        config_dir: Path to the config directory. Defaults to
            ``<repo_root>/config/``.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        if config_dir is None:
            config_dir = Path(__file__).parent.parent / "config"
        self.config_dir = Path(config_dir)

        env_file = self.config_dir / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        self.settings = self._load_yaml("settings.yaml")

    def _load_yaml(self, filename: str) -> dict:
        """Load a YAML configuration file."""
        filepath = self.config_dir / filename
        if filepath.exists():
            with open(filepath, "r") as f:
                return yaml.safe_load(f) or {}
        return {}

    def _resolve_dir(self, key: str) -> Optional[Path]:
        """Resolve a handler directory setting relative to the repo root."""
        configured = self.settings.get(key)
        if not configured:
            return None
        path = Path(configured).expanduser()
        if not path.is_absolute():
            path = self.config_dir.parent / path
        return path

    def validate(self):
        """Validate critical settings at startup.

        Checks that developer guild/user ids are well-formed snowflakes
        and that a bot token is present. Logs errors but does not
        raise.
        """
        for setting, ids in (
            ("dev_guild_ids", self.dev_guild_ids),
            ("dev_user_ids", self.dev_user_ids),
            ("dev_role_ids", self.dev_role_ids),
        ):
            for snowflake in ids:
                created = snowflake_timestamp(snowflake)
                if created is None or created <= DISCORD_EPOCH:
                    logger.error(
                        "config_invalid_snowflake",
                        setting=setting,
                        value=snowflake,
                    )

        if not self.bot_token:
            logger.warning("config_missing_bot_token", env_var="BOT_TOKEN")

        if self.validations_path and not self.commands_path:
            logger.error(
                "config_validations_without_commands",
                msg="validations_path requires commands_path",
            )

    # Handler directories
    @property
    def commands_path(self) -> Optional[Path]:
        """Root directory of command modules (None if not configured)."""
        return self._resolve_dir("commands_path")

    @property
    def events_path(self) -> Optional[Path]:
        """Root directory of event handler folders (None if not configured)."""
        return self._resolve_dir("events_path")

    @property
    def validations_path(self) -> Optional[Path]:
        """Root directory of validation modules (None if not configured)."""
        return self._resolve_dir("validations_path")

    # Developer audience
    @property
    def dev_guild_ids(self) -> List[str]:
        """Guilds that receive dev-only commands. Env TEST_SERVERS wins."""
        env = os.environ.get("TEST_SERVERS")
        if env:
            return _split_ids(env)
        return _split_ids(self.settings.get("dev_guild_ids"))

    @property
    def dev_user_ids(self) -> List[str]:
        """Users allowed to run dev-only commands. Env OWNER_IDS wins."""
        env = os.environ.get("OWNER_IDS")
        if env:
            return _split_ids(env)
        return _split_ids(self.settings.get("dev_user_ids"))

    @property
    def dev_role_ids(self) -> List[str]:
        """Roles whose members may run dev-only commands."""
        return _split_ids(self.settings.get("dev_role_ids"))

    # Command handling
    @property
    def bulk_register(self) -> bool:
        """Replace all remote commands on sync instead of diffing (default False)."""
        return bool(self.settings.get("bulk_register", False))

    @property
    def skip_builtin_validations(self) -> bool:
        """Skip the developer/permission checks (default False)."""
        return bool(self.settings.get("skip_builtin_validations", False))

    @property
    def sync_deep_compare(self) -> bool:
        """Compare option payloads, not just counts, when diffing (default False)."""
        sync_config = self.settings.get("sync", {})
        return bool(sync_config.get("deep_compare", False))

    @property
    def interaction_event(self) -> str:
        """Event name carrying inbound interactions (default interaction_create)."""
        return self.settings.get("interaction_event", "interaction_create")

    # Discord REST platform
    @property
    def bot_token(self) -> str:
        """Bot token from the BOT_TOKEN env var."""
        return os.environ.get("BOT_TOKEN", "")

    @property
    def application_id(self) -> str:
        """Application id. Env APPLICATION_ID takes precedence."""
        return os.environ.get("APPLICATION_ID") or str(
            self.settings.get("application_id", "")
        )

    @property
    def api_base_url(self) -> str:
        """Discord REST base URL (default v10)."""
        discord_config = self.settings.get("discord", {})
        return discord_config.get("api_base_url", DEFAULT_API_BASE_URL)

    @property
    def api_timeout(self) -> float:
        """Per-request timeout in seconds for REST calls (default 15)."""
        discord_config = self.settings.get("discord", {})
        try:
            return float(discord_config.get("timeout", 15))
        except (TypeError, ValueError):
            logger.warning("config_invalid_timeout", value=discord_config.get("timeout"))
            return 15.0

    # Logging
    @property
    def log_dir(self) -> Path:
        """Get log directory path."""
        configured = self.settings.get("log_dir")
        if configured:
            return Path(configured).expanduser()
        return self.config_dir.parent / "logs"

    @property
    def logging_level(self) -> str:
        """Global log level (default INFO). Controls console and combined file."""
        log_config = self.settings.get("logging", {})
        return log_config.get("level", "INFO")

    @property
    def logging_subsystem_levels(self) -> dict:
        """Per-subsystem log level overrides. E.g. {"sync": "DEBUG"}."""
        log_config = self.settings.get("logging", {})
        return log_config.get("subsystem_levels", {})

    @property
    def logging_max_file_size_mb(self) -> int:
        """Max size per log file in MB before rotation (default 10)."""
        log_config = self.settings.get("logging", {})
        return log_config.get("max_file_size_mb", 10)

    @property
    def logging_backup_count(self) -> int:
        """Number of rotated log files to keep (default 5)."""
        log_config = self.settings.get("logging", {})
        return log_config.get("backup_count", 5)


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config
