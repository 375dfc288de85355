import asyncio

import pytest

from dropin_chat.constants import (
    ASSISTANT_APOLOGY_GENERIC,
    ASSISTANT_APOLOGY_NOT_AUTHENTICATED,
    ASSISTANT_APOLOGY_NOT_PARTICIPANT,
    ASSISTANT_GREETING,
    ASSISTANT_MARKER,
    ASSISTANT_UNAVAILABLE_TEXT,
)
from dropin_chat.errors import PullPathError, SendError
from dropin_chat.services import AssistantService, CommandService
from dropin_chat.services.command_service import (
    CommandState,
    apology_for,
    build_history_window,
    parse_command,
)
from dropin_chat.state import SyncSession
from fakes import build_stack, make_message


def build_commands(available: bool | None = True):
    stack = build_stack()
    stack.sync.attach(SyncSession(room_id="r1"))
    assistant = AssistantService(stack.rooms)
    assistant.available = available
    commands = CommandService(stack.sync, assistant, user_id="me")
    return stack, assistant, commands


def contents(stack) -> list[str]:
    return [message.content for message in stack.sync.messages]


def test_parse_command_matches_leading_prefix():
    assert parse_command("@ai") == (True, "")
    assert parse_command("@ai ") == (True, "")
    assert parse_command("@ai   what time  ") == (True, "what time")
    assert parse_command("@aiwhat time") == (True, "what time")
    assert parse_command("  @ai x") == (False, "")
    assert parse_command("hello @ai") == (False, "")


def test_plain_text_is_sent_as_is():
    stack, _assistant, commands = build_commands()

    result = asyncio.run(commands.submit("r1", "hello there"))

    assert result.state is CommandState.PLAIN
    assert result.done
    assert contents(stack) == ["hello there"]
    assert stack.rooms.chat_requests == []


def test_bare_prefix_sends_greeting_without_request():
    stack, _assistant, commands = build_commands()

    result = asyncio.run(commands.submit("r1", "@ai "))

    assert result.state is CommandState.GREETED
    assert contents(stack) == ["@ai ", ASSISTANT_GREETING]
    assert stack.rooms.chat_requests == []


def test_unavailable_assistant_sends_difficulties_notice():
    stack, _assistant, commands = build_commands(available=False)

    result = asyncio.run(commands.submit("r1", "@ai what time"))

    assert result.state is CommandState.SERVICE_UNAVAILABLE
    assert contents(stack) == ["@ai what time", ASSISTANT_UNAVAILABLE_TEXT]
    assert stack.rooms.chat_requests == []


def test_prefix_without_space_is_still_a_command():
    stack, _assistant, commands = build_commands(available=False)

    result = asyncio.run(commands.submit("r1", "@aiwhat time"))

    assert result.state is CommandState.SERVICE_UNAVAILABLE
    assert contents(stack) == ["@aiwhat time", ASSISTANT_UNAVAILABLE_TEXT]
    assert stack.rooms.chat_requests == []


def test_unknown_availability_counts_as_unavailable():
    stack, _assistant, commands = build_commands(available=None)

    result = asyncio.run(commands.submit("r1", "@ai hello"))

    assert result.state is CommandState.SERVICE_UNAVAILABLE
    assert stack.rooms.chat_requests == []


def test_reply_is_delivered_as_marked_message():
    stack, _assistant, commands = build_commands()
    stack.sync.apply_incoming(make_message("h1", content="earlier", sender="u2"))

    async def scenario():
        result = await commands.submit("r1", "@ai what time")
        assert result.state is CommandState.AWAITING_REPLY
        assert commands.pending_count == 1
        final = await result.reply_task
        return result, final

    result, final = asyncio.run(scenario())

    assert final is CommandState.REPLY_DELIVERED
    assert result.state is CommandState.REPLY_DELIVERED
    assert contents(stack)[-1] == f"{ASSISTANT_MARKER} It is noon."
    assert result.follow_up is not None
    query, room_id, history = stack.rooms.chat_requests[0]
    assert (query, room_id) == ("what time", "r1")
    # The echoed command is not part of its own history.
    assert [entry.content for entry in history] == ["earlier"]
    assert history[0].role == "assistant"
    assert commands.pending_count == 0


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (PullPathError("Forbidden", 403), ASSISTANT_APOLOGY_NOT_PARTICIPANT),
        (PullPathError("You are not a participant"), ASSISTANT_APOLOGY_NOT_PARTICIPANT),
        (PullPathError("Unauthorized", 401), ASSISTANT_APOLOGY_NOT_AUTHENTICATED),
        (PullPathError("Invalid token"), ASSISTANT_APOLOGY_NOT_AUTHENTICATED),
        (PullPathError("Server exploded", 500), ASSISTANT_APOLOGY_GENERIC),
        (RuntimeError("boom"), ASSISTANT_APOLOGY_GENERIC),
    ],
)
def test_failed_reply_sends_matching_apology(error, expected):
    stack, _assistant, commands = build_commands()
    stack.rooms.fail["chat"] = error

    async def scenario():
        result = await commands.submit("r1", "@ai help me")
        await commands.wait_pending()
        return result

    result = asyncio.run(scenario())

    assert result.state is CommandState.REPLY_FAILED
    assert contents(stack) == ["@ai help me", expected]


def test_apology_categories():
    assert apology_for(PullPathError("x", 403)) == ASSISTANT_APOLOGY_NOT_PARTICIPANT
    assert (
        apology_for(ValueError("auth expired")) == ASSISTANT_APOLOGY_NOT_AUTHENTICATED
    )
    assert apology_for(ValueError("timeout")) == ASSISTANT_APOLOGY_GENERIC


def test_echo_failure_propagates():
    stack, _assistant, commands = build_commands()
    stack.rooms.fail["create_message"] = PullPathError("Room is closed", 400)

    with pytest.raises(SendError):
        asyncio.run(commands.submit("r1", "@ai hi"))
    assert stack.rooms.chat_requests == []


def test_history_window_is_capped_and_skips_assistant_replies():
    messages = []
    for index in range(12):
        sender = "me" if index % 2 == 0 else "u2"
        messages.append(
            make_message(f"m{index}", content=f"line {index}", sender=sender)
        )
        if index % 3 == 0:
            reply = f"{ASSISTANT_MARKER} old reply"
            messages.append(make_message(f"a{index}", content=reply, sender="me"))
    messages.append(make_message("blank", content="   ", sender="u2"))

    window = build_history_window(messages, "me")

    assert len(window) == 8
    assert all(not entry.content.startswith(ASSISTANT_MARKER) for entry in window)
    assert [entry.content for entry in window] == [f"line {i}" for i in range(4, 12)]
    assert [entry.role for entry in window[:2]] == ["user", "assistant"]


def test_concurrent_commands_complete_independently():
    stack, _assistant, commands = build_commands()

    async def scenario():
        first = await commands.submit("r1", "@ai one")
        second = await commands.submit("r1", "@ai two")
        states = await commands.wait_pending()
        return first, second, states

    first, second, states = asyncio.run(scenario())

    assert states == [CommandState.REPLY_DELIVERED, CommandState.REPLY_DELIVERED]
    assert first.follow_up is not None and second.follow_up is not None
    assert [query for query, _, _ in stack.rooms.chat_requests] == ["one", "two"]


def test_check_status_updates_availability():
    stack, assistant, _commands = build_commands(available=None)

    assert asyncio.run(assistant.check_status()) is True
    assert assistant.supports("summary")

    stack.rooms.fail["get_status"] = PullPathError("down", 503)
    assert asyncio.run(assistant.check_status()) is False
    assert assistant.is_available is False
    assert assistant.last_error == "HTTP 503: down"
