"""Tests for startup phases, reloads and interaction routing."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from handlerkit.emitter import EventEmitter
from handlerkit.exceptions import ConfigurationError, PreconditionError
from handlerkit.interaction import Interaction, InteractionKind
from handlerkit.orchestrator import Orchestrator, Phase
from handlerkit.platform import GLOBAL_SCOPE, Scope

PING = """
    data = {"name": "ping", "description": "Ping"}

    def run(ctx):
        ctx.interaction.options["ran"] = ctx.kit
"""

SEARCH = """
    data = {"name": "search", "description": "Search"}

    async def run(ctx):
        ctx.interaction.options["ran"] = True

    async def autocomplete(ctx):
        ctx.interaction.options["completed"] = True
"""


def _make_orchestrator(platform, tmp_path=None, **overrides):
    source = overrides.pop("event_source", EventEmitter())
    kwargs = {"client": "client"}
    if tmp_path is not None:
        kwargs["commands_path"] = tmp_path / "commands"
    kwargs.update(overrides)
    return Orchestrator(platform, source, **kwargs)


def _interaction(name, kind=InteractionKind.COMMAND, **fields):
    return Interaction(command_name=name, kind=kind, responder=AsyncMock(), **fields)


class TestInit:
    """Tests for Orchestrator.init."""

    def test_validations_require_commands_path(self, make_platform, tmp_path):
        with pytest.raises(ConfigurationError):
            Orchestrator(make_platform(), EventEmitter(), validations_path=tmp_path)

    @pytest.mark.asyncio
    async def test_phases_and_sync(self, make_platform, tmp_path, write_module):
        write_module(tmp_path / "commands" / "ping.py", PING)
        platform = make_platform()
        kit = _make_orchestrator(platform, tmp_path)
        assert kit.phase is Phase.UNINITIALIZED

        await kit.init()
        assert kit.phase is Phase.READY
        assert platform.write_calls == [("create", GLOBAL_SCOPE, "ping")]
        assert kit.commands[0]["data"]["name"] == "ping"
        assert "run" not in kit.commands[0]
        assert kit.health()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_init_twice_raises(self, make_platform):
        kit = _make_orchestrator(make_platform())
        await kit.init()
        with pytest.raises(PreconditionError):
            await kit.init()

    @pytest.mark.asyncio
    async def test_bulk_register_uses_full_sync(self, make_platform, tmp_path, write_module):
        write_module(tmp_path / "commands" / "ping.py", PING)
        platform = make_platform()
        kit = _make_orchestrator(platform, tmp_path, bulk_register=True)
        await kit.init()
        assert platform.calls == [("set", GLOBAL_SCOPE, ["ping"])]

    @pytest.mark.asyncio
    async def test_sync_deferred_until_ready(self, make_platform, tmp_path, write_module):
        write_module(tmp_path / "commands" / "ping.py", PING)
        platform = make_platform(ready=False)
        source = EventEmitter()
        kit = _make_orchestrator(platform, tmp_path, event_source=source)

        await kit.init()
        assert platform.calls == []
        assert kit.phase is Phase.READY

        platform.ready = True
        await source.emit("ready")
        await source.emit("ready")
        assert platform.write_calls == [("create", GLOBAL_SCOPE, "ping")]

    @pytest.mark.asyncio
    async def test_events_receive_client_and_kit(self, make_platform, tmp_path, write_module):
        write_module(tmp_path / "events" / "ready" / "log.py", """
            def handler(log, client, kit):
                log.append((client, kit))
        """)
        source = EventEmitter()
        kit = _make_orchestrator(make_platform(), events_path=tmp_path / "events", event_source=source)
        await kit.init()

        log = []
        await source.emit("ready", log)
        assert log == [("client", kit)]


class TestRouting:
    """Tests for handle_interaction."""

    async def _ready_kit(self, platform, tmp_path, write_module, **overrides):
        write_module(tmp_path / "commands" / "ping.py", PING)
        write_module(tmp_path / "commands" / "search.py", SEARCH)
        kit = _make_orchestrator(platform, tmp_path, **overrides)
        await kit.init()
        return kit

    @pytest.mark.asyncio
    async def test_routes_to_run(self, make_platform, tmp_path, write_module):
        kit = await self._ready_kit(make_platform(), tmp_path, write_module)
        interaction = _interaction("ping")
        assert await kit.handle_interaction(interaction) is True
        assert interaction.options["ran"] is kit

    @pytest.mark.asyncio
    async def test_router_bound_to_interaction_event(self, make_platform, tmp_path, write_module):
        source = EventEmitter()
        await self._ready_kit(make_platform(), tmp_path, write_module, event_source=source)
        interaction = _interaction("search")
        await source.emit("interaction_create", interaction)
        assert interaction.options["ran"] is True

    @pytest.mark.asyncio
    async def test_autocomplete(self, make_platform, tmp_path, write_module):
        kit = await self._ready_kit(make_platform(), tmp_path, write_module)
        interaction = _interaction("search", InteractionKind.AUTOCOMPLETE)
        assert await kit.handle_interaction(interaction) is True
        assert interaction.options == {"completed": True}

    @pytest.mark.asyncio
    async def test_autocomplete_without_callable_ignored(self, make_platform, tmp_path, write_module):
        kit = await self._ready_kit(make_platform(), tmp_path, write_module)
        interaction = _interaction("ping", InteractionKind.AUTOCOMPLETE)
        assert await kit.handle_interaction(interaction) is False
        assert interaction.options == {}

    @pytest.mark.asyncio
    async def test_non_command_and_unknown_ignored(self, make_platform, tmp_path, write_module):
        kit = await self._ready_kit(make_platform(), tmp_path, write_module)
        assert await kit.handle_interaction(_interaction("ping", InteractionKind.COMPONENT)) is False
        assert await kit.handle_interaction(_interaction("missing")) is False

    @pytest.mark.asyncio
    async def test_validation_veto_blocks_run(self, make_platform, tmp_path, write_module):
        write_module(tmp_path / "validations" / "deny.py", """
            def handler(ctx):
                return ctx.command.name == "ping"
        """)
        kit = await self._ready_kit(
            make_platform(), tmp_path, write_module,
            validations_path=tmp_path / "validations",
        )
        ping = _interaction("ping")
        assert await kit.handle_interaction(ping) is False
        assert ping.options == {}
        assert await kit.handle_interaction(_interaction("search")) is True

    @pytest.mark.asyncio
    async def test_command_error_logged_by_router(self, make_platform, tmp_path, write_module):
        write_module(tmp_path / "commands" / "boom.py", """
            data = {"name": "boom"}

            def run(ctx):
                raise RuntimeError("command failed")
        """)
        source = EventEmitter()
        kit = await self._ready_kit(make_platform(), tmp_path, write_module, event_source=source)
        with pytest.raises(RuntimeError):
            await kit.handle_interaction(_interaction("boom"))
        await source.emit("interaction_create", _interaction("boom"))


class TestReload:
    """Tests for the reload operations."""

    @pytest.mark.asyncio
    async def test_reload_requires_paths(self, make_platform):
        kit = _make_orchestrator(make_platform())
        await kit.init()
        with pytest.raises(ConfigurationError):
            await kit.reload_commands()
        with pytest.raises(ConfigurationError):
            await kit.reload_events()
        with pytest.raises(ConfigurationError):
            await kit.reload_validations()

    @pytest.mark.asyncio
    async def test_reload_commands_requires_ready_platform(self, make_platform, tmp_path, write_module):
        write_module(tmp_path / "commands" / "ping.py", PING)
        platform = make_platform(ready=False)
        kit = _make_orchestrator(platform, tmp_path)
        await kit.init()
        with pytest.raises(PreconditionError):
            await kit.reload_commands()

    @pytest.mark.asyncio
    async def test_reload_commands_picks_up_changes(self, make_platform, tmp_path, write_module):
        path = write_module(tmp_path / "commands" / "ping.py", PING)
        platform = make_platform()
        kit = _make_orchestrator(platform, tmp_path, dev_guild_ids=["100"])
        await kit.init()

        write_module(path, PING.replace('"Ping"', '"Ping v2"').replace("data = {", 'options = {"dev_only": True}\n    data = {'))
        report = await kit.reload_commands(scope_type="dev")

        assert report.created == 1
        assert platform.write_calls[-1] == ("create", Scope.guild("100"), "ping")
        assert kit.commands[0]["data"]["description"] == "Ping v2"

    @pytest.mark.asyncio
    async def test_reload_events_twice_no_duplicates(self, make_platform, tmp_path, write_module):
        write_module(tmp_path / "events" / "ready" / "count.py", """
            def handler(log, client, kit):
                log.append(1)
        """)
        source = EventEmitter()
        kit = _make_orchestrator(make_platform(), events_path=tmp_path / "events", event_source=source)
        await kit.init()
        await kit.reload_events()
        await kit.reload_events()

        log = []
        await source.emit("ready", log)
        assert log == [1]

    @pytest.mark.asyncio
    async def test_reload_validations(self, make_platform, tmp_path, write_module):
        write_module(tmp_path / "commands" / "ping.py", PING)
        check = write_module(tmp_path / "validations" / "gate.py", "def handler(ctx):\n    return False\n")
        kit = _make_orchestrator(make_platform(), tmp_path, validations_path=tmp_path / "validations")
        await kit.init()
        assert await kit.handle_interaction(_interaction("ping")) is True

        write_module(check, "def handler(ctx):\n    return True\n")
        await kit.reload_validations()
        assert await kit.handle_interaction(_interaction("ping")) is False


def test_from_config(make_platform, tmp_path):
    config = MagicMock()
    config.commands_path = tmp_path / "commands"
    config.events_path = None
    config.validations_path = None
    config.dev_guild_ids = ["1"]
    config.dev_user_ids = ["2"]
    config.dev_role_ids = []
    config.bulk_register = True
    config.skip_builtin_validations = True
    config.sync_deep_compare = True
    config.interaction_event = "interaction"

    kit = Orchestrator.from_config(config, make_platform(), EventEmitter())
    assert kit.dev_guild_ids == ["1"]
    assert kit.bulk_register is True
    assert kit.registry.deep_compare is True
    assert kit.validations.skip_builtins is True
    assert kit.interaction_event == "interaction"
