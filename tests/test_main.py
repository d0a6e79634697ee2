"""Tests for the handlerkit-sync entry point."""

from unittest.mock import MagicMock, patch

import pytest

from handlerkit.main import main, parse_args
from handlerkit.platform import GLOBAL_SCOPE


def _make_config(commands_path, bulk=False):
    config = MagicMock()
    config.bot_token = "token"
    config.application_id = "app"
    config.commands_path = commands_path
    config.dev_guild_ids = []
    config.dev_user_ids = []
    config.dev_role_ids = []
    config.bulk_register = bulk
    config.sync_deep_compare = False
    return config


class _PlatformContext:
    def __init__(self, platform):
        self.platform = platform

    async def __aenter__(self):
        return self.platform

    async def __aexit__(self, *exc):
        return False


def test_parse_args():
    args = parse_args(["--full", "--scope", "dev"])
    assert args.full is True
    assert args.scope == "dev"
    assert args.clear is False


async def _run_main(argv, config, platform):
    with patch("handlerkit.main.setup_logging"), \
         patch("handlerkit.config.get_config", return_value=config), \
         patch("handlerkit.discord_rest.DiscordRestPlatform", return_value=_PlatformContext(platform)):
        return await main(argv)


@pytest.mark.asyncio
async def test_incremental_sync(tmp_path, write_module, make_platform):
    write_module(tmp_path / "ping.py", 'data = {"name": "ping"}\ndef run(ctx):\n    pass\n')
    platform = make_platform()
    assert await _run_main([], _make_config(tmp_path), platform) == 0
    assert platform.write_calls == [("create", GLOBAL_SCOPE, "ping")]


@pytest.mark.asyncio
async def test_full_sync_flag(tmp_path, write_module, make_platform):
    write_module(tmp_path / "ping.py", 'data = {"name": "ping"}\ndef run(ctx):\n    pass\n')
    platform = make_platform()
    assert await _run_main(["--full"], _make_config(tmp_path), platform) == 0
    assert platform.calls == [("set", GLOBAL_SCOPE, ["ping"])]


@pytest.mark.asyncio
async def test_clear(tmp_path, make_platform):
    platform = make_platform()
    assert await _run_main(["--clear", "--scope", "global"], _make_config(None), platform) == 0
    assert platform.calls == [("set", GLOBAL_SCOPE, [])]


@pytest.mark.asyncio
async def test_failures_give_nonzero_exit(tmp_path, write_module, make_platform, platform_error):
    write_module(tmp_path / "ping.py", 'data = {"name": "ping"}\ndef run(ctx):\n    pass\n')
    platform = make_platform()
    platform.failures["create:ping"] = platform_error
    assert await _run_main([], _make_config(tmp_path), platform) == 1


@pytest.mark.asyncio
async def test_missing_credentials(make_platform):
    config = _make_config(None)
    config.bot_token = ""
    assert await _run_main([], config, make_platform()) == 2
