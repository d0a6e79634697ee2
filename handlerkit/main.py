"""Command-line entry point for handlerkit.

Synchronizes the commands under the configured commands directory with
Discord without starting a bot, or clears every registered command.

Initializes logging in two phases (defaults, then config-driven), loads
and validates the config, and runs a full or incremental sync.

Key functions:
    main: Async entry point. Returns the process exit code.
    run: Synchronous wrapper for the ``handlerkit-sync`` console script.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

import structlog

from . import __version__
from .logging_config import setup_logging


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="handlerkit-sync",
        description="Register the application commands found under commands_path.",
    )
    parser.add_argument(
        "--full",
        action="store_true",
        help="replace every command in one call per scope instead of diffing",
    )
    parser.add_argument(
        "--scope",
        choices=("dev", "global"),
        default=None,
        help="only sync developer guilds or only global commands",
    )
    parser.add_argument(
        "--clear",
        action="store_true",
        help="remove every registered command from the selected scopes",
    )
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None) -> int:
    """Main async entry point."""
    args = parse_args(argv)

    # Phase 1: defaults, cache_logger_on_first_use=False
    setup_logging()
    logger = structlog.get_logger("handlerkit")

    logger.info("handlerkit_sync_starting", version=__version__)

    # Import here to ensure logging is configured first
    from .commands.base import DevAudience
    from .commands.loader import build_commands
    from .commands.registry import CommandRegistry
    from .config import get_config
    from .discord_rest import DiscordRestPlatform

    config = get_config()
    config.validate()

    # Phase 2: reconfigure with real config, cache_logger_on_first_use=True
    setup_logging(config)

    if not config.bot_token or not config.application_id:
        logger.error("sync_missing_credentials", env_vars=["BOT_TOKEN", "APPLICATION_ID"])
        return 2
    if not args.clear and not config.commands_path:
        logger.error("sync_missing_commands_path", setting="commands_path")
        return 2

    audience = DevAudience.from_ids(
        config.dev_guild_ids, config.dev_user_ids, config.dev_role_ids
    )
    async with DiscordRestPlatform(
        config.bot_token,
        config.application_id,
        base_url=config.api_base_url,
        timeout=config.api_timeout,
    ) as platform:
        registry = CommandRegistry(platform, audience, deep_compare=config.sync_deep_compare)
        if args.clear:
            report = await registry.unregister_all(args.scope)
        else:
            registry.declare(build_commands(config.commands_path))
            registry.warn_missing_audience()
            if args.full or config.bulk_register:
                report = await registry.sync_full(scope_type=args.scope)
            else:
                report = await registry.sync_incremental(scope_type=args.scope)

    logger.info("handlerkit_sync_finished", **report.summary())
    return 0 if report.ok else 1


def run():
    """Synchronous entry point for the ``handlerkit-sync`` console script."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
