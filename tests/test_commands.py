"""Tests for CommandRegistry."""
import pytest

from core.commands import CommandRegistry, ScopeKey
from core.errors import ConfigurationError
from fakes import FakeClient


async def start(ctx):
    pass


async def other(ctx):
    pass


CHAT_A = ScopeKey.chat(111)
CHAT_B = ScopeKey.chat(222)


def test_default_scope_when_none_given():
    registry = CommandRegistry()
    registry.add_command("/start", "begin", start)

    cmds = registry.get_commands(ScopeKey.default())
    assert [(c.name, c.description) for c in cmds] == [("start", "begin")]
    assert registry.get_handler("/start") is start
    assert registry.get_handler("start") is start


def test_scope_isolation():
    registry = CommandRegistry()
    registry.add_command("report", "file a report", start, CHAT_A, CHAT_B)

    assert [c.name for c in registry.get_commands(CHAT_A)] == ["report"]
    assert [c.name for c in registry.get_commands(CHAT_B)] == ["report"]
    assert registry.get_commands(ScopeKey.default()) == []
    assert registry.get_commands(ScopeKey.chat(333)) == []
    assert registry.get_handler("report") is start


def test_reregistration_merges_scopes_and_keeps_one_handler():
    registry = CommandRegistry()
    registry.add_command("report", "file a report", start, CHAT_A)
    registry.add_command("report", "file a report", other, CHAT_B)

    assert registry.get_handler("report") is other
    assert set(registry.scopes()) == {CHAT_A, CHAT_B}
    assert registry.get_commands(CHAT_A)[0].handler is other
    assert registry.get_commands(CHAT_B)[0].handler is other
    assert len(registry) == 1


@pytest.mark.parametrize(
    "name,description,scopes",
    [
        ("start", "", ()),
        ("start", "x" * 257, ()),
        ("Bad Name!", "ok", ()),
        ("start", "ok", (ScopeKey.default().with_locale("eng"),)),
        ("start", "ok", (ScopeKey("chat"),)),
        ("start", "ok", (ScopeKey("everywhere"),)),
    ],
)
def test_invalid_registrations_are_recorded_not_raised(name, description, scopes):
    registry = CommandRegistry()
    registry.add_command(name, description, start, *scopes)

    assert len(registry.errors) >= 1
    assert registry.get_handler(name) is None
    with pytest.raises(ConfigurationError):
        registry.raise_for_errors()


def test_all_problems_are_collected():
    registry = CommandRegistry()
    registry.add_command("one", "", start)
    registry.add_command("two", "ok", start)
    registry.add_command("three", "y" * 300, start)

    with pytest.raises(ConfigurationError) as excinfo:
        registry.raise_for_errors()
    assert len(excinfo.value.problems) == 2
    assert registry.get_handler("two") is start


def test_description_boundaries_are_accepted():
    registry = CommandRegistry()
    registry.add_command("a", "x", start)
    registry.add_command("b", "x" * 256, start)

    assert registry.errors == []


def test_localized_command_registers_each_locale():
    registry = CommandRegistry()
    registry.add_localized_command(
        "help", {"": "Get help", "ru": "Получить помощь"}, start, ScopeKey.all_private_chats()
    )

    private = ScopeKey.all_private_chats()
    assert registry.get_commands(private)[0].description == "Get help"
    assert registry.get_commands(private.with_locale("ru"))[0].description == "Получить помощь"
    assert registry.get_handler("help") is start


def test_scope_to_api():
    assert ScopeKey.default().to_api() == {"type": "default"}
    assert ScopeKey.chat_member("@group", 5).with_locale("de").to_api() == {
        "type": "chat_member",
        "chat_id": "@group",
        "user_id": 5,
    }


async def test_sync_writes_only_changed_scopes_and_is_idempotent():
    registry = CommandRegistry()
    registry.add_command("start", "begin", start)
    registry.add_command("report", "file a report", other, CHAT_A)
    client = FakeClient()

    written = await registry.sync(client)
    assert set(written) == {ScopeKey.default(), CHAT_A}
    assert len(client.calls_to("setMyCommands")) == 2

    written = await registry.sync(client)
    assert written == []
    assert len(client.calls_to("setMyCommands")) == 2
    assert len(client.calls_to("getMyCommands")) == 4


async def test_sync_compares_without_order():
    registry = CommandRegistry()
    registry.add_command("start", "begin", start)
    registry.add_command("help", "show help", start)
    client = FakeClient()
    client.on(
        "getMyCommands",
        lambda m: [
            {"command": "help", "description": "show help"},
            {"command": "start", "description": "begin"},
        ],
    )

    assert await registry.sync(client) == []
    assert client.calls_to("setMyCommands") == []


async def test_sync_rewrites_changed_description():
    registry = CommandRegistry()
    registry.add_command("start", "begin", start)
    client = FakeClient()
    client.on("getMyCommands", lambda m: [{"command": "start", "description": "old text"}])

    assert await registry.sync(client) == [ScopeKey.default()]
    (call,) = client.calls_to("setMyCommands")
    assert call.payload()["commands"] == [{"command": "start", "description": "begin"}]


async def test_sync_passes_locale_separately_from_scope():
    registry = CommandRegistry()
    registry.add_command("start", "начать", start, ScopeKey.default().with_locale("ru"))
    client = FakeClient()

    await registry.sync(client)

    (call,) = client.calls_to("setMyCommands")
    assert call.payload()["scope"] == {"type": "default"}
    assert call.payload()["language_code"] == "ru"


def test_reregistration_keeps_descriptions_per_scope():
    registry = CommandRegistry()
    registry.add_command("report", "old text", start, CHAT_A)
    registry.add_command("report", "new text", other, CHAT_B)

    (in_a,) = registry.get_commands(CHAT_A)
    (in_b,) = registry.get_commands(CHAT_B)
    assert (in_a.description, in_a.handler) == ("old text", other)
    assert (in_b.description, in_b.handler) == ("new text", other)
