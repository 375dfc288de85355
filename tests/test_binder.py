import asyncio

import pytest

from dropin_chat.errors import PullPathError, RoomActivationError
from dropin_chat.state import LifecycleState
from fakes import build_stack, make_message, make_reaction, make_room, wait_for_call


def test_activate_loads_room_history_and_reactions():
    stack = build_stack()
    stack.rooms.add_room(make_room("r1", title="Standup"))
    stack.rooms.messages["r1"] = [make_message("m1"), make_message("m2")]
    stack.rooms.reactions["r1"] = [make_reaction("x1")]

    async def scenario():
        room = await stack.binder.activate("r1")
        await stack.binder.leave()
        return room

    stack.lifecycle.start = lambda: None
    room = asyncio.run(scenario())

    assert room is not None and room.title == "Standup"
    names = [name for name, _ in stack.rooms.calls]
    assert names[:3] == ["get_room", "get_messages", "get_reactions"]
    assert stack.push.signals("join_room") == ["r1"]


def test_active_room_state_is_exposed_until_leave():
    stack = build_stack()
    stack.rooms.add_room(make_room("r1"))
    stack.rooms.messages["r1"] = [make_message("m1")]

    async def scenario():
        await stack.binder.activate("r1")
        assert stack.binder.room_id == "r1"
        assert stack.router.bound_room_id == "r1"
        assert [m.id for m in stack.sync.messages] == ["m1"]

        stack.push.deliver(
            "receive_message",
            {"roomId": "r1", "message": make_message("m2").to_dict()},
        )
        assert [m.id for m in stack.sync.messages] == ["m1", "m2"]

        await stack.binder.leave()
        await stack.binder.wait_background()

    asyncio.run(scenario())

    assert stack.binder.room_id is None
    assert stack.router.bound_room_id is None
    assert stack.sync.messages == []
    assert ("leave_room", "r1") in stack.rooms.calls


def test_join_option_joins_before_fetching_room():
    stack = build_stack()
    stack.rooms.add_room(make_room("r1"))

    async def scenario():
        await stack.binder.activate("r1", join=True)
        await stack.binder.leave()

    asyncio.run(scenario())
    assert stack.rooms.calls[0] == ("join_room", "r1")
    assert stack.rooms.calls[1] == ("get_room", "r1")


def test_switching_rooms_mid_fetch_discards_first_room_results():
    stack = build_stack()
    stack.rooms.add_room(make_room("r1"))
    stack.rooms.add_room(make_room("r2"))
    stack.rooms.messages["r1"] = [make_message("a1", room_id="r1")]
    stack.rooms.messages["r2"] = [make_message("b1", room_id="r2")]

    async def scenario():
        gate = asyncio.Event()
        stack.rooms.gates["get_messages:r1"] = gate
        first = asyncio.create_task(stack.binder.activate("r1"))
        await wait_for_call(stack.rooms, "get_messages", "r1")

        second = await stack.binder.activate("r2")
        gate.set()
        superseded = await first
        bound_room = stack.binder.room_id
        await stack.binder.leave()
        await stack.binder.wait_background()
        return superseded, second, bound_room

    stack.lifecycle.start = lambda: None
    superseded, second, bound_room = asyncio.run(scenario())

    assert superseded is None
    assert second is not None and second.id == "r2"
    assert bound_room == "r2"
    assert ("leave_room", "r1") in stack.rooms.calls


def test_switch_keeps_second_room_messages_only():
    stack = build_stack()
    stack.rooms.add_room(make_room("r1"))
    stack.rooms.add_room(make_room("r2"))
    stack.rooms.messages["r1"] = [make_message("a1", room_id="r1")]
    stack.rooms.messages["r2"] = [make_message("b1", room_id="r2")]
    snapshot: list[str] = []

    async def scenario():
        gate = asyncio.Event()
        stack.rooms.gates["get_messages:r1"] = gate
        first = asyncio.create_task(stack.binder.activate("r1"))
        await wait_for_call(stack.rooms, "get_messages", "r1")
        await stack.binder.activate("r2")
        gate.set()
        await first
        snapshot.extend(m.id for m in stack.sync.messages)
        stack.push.deliver(
            "receive_message",
            {"roomId": "r1", "message": make_message("a2", room_id="r1").to_dict()},
        )
        snapshot.extend(m.id for m in stack.sync.messages)
        await stack.binder.leave()

    stack.lifecycle.start = lambda: None
    asyncio.run(scenario())
    assert snapshot == ["b1", "b1"]


def test_activation_failure_leaves_nothing_bound():
    stack = build_stack()
    stack.rooms.fail["get_room"] = PullPathError("Room not found", 404)

    with pytest.raises(RoomActivationError) as excinfo:
        asyncio.run(stack.binder.activate("missing"))

    assert excinfo.value.room_id == "missing"
    assert stack.binder.room_id is None
    assert stack.router.bound_room_id is None
    assert stack.push.signals("join_room") == []
    assert stack.lifecycle.watch.room_id is None


def test_empty_room_id_is_rejected():
    stack = build_stack()
    with pytest.raises(RoomActivationError):
        asyncio.run(stack.binder.activate("  "))
    assert stack.rooms.calls == []


def test_leave_notification_failure_is_swallowed():
    stack = build_stack()
    stack.rooms.add_room(make_room("r1"))
    stack.rooms.fail["leave_room"] = PullPathError("gone", 500)

    async def scenario():
        await stack.binder.activate("r1")
        await stack.binder.leave()
        await stack.binder.wait_background()

    asyncio.run(scenario())
    assert stack.binder.room_id is None


def test_reactivating_same_room_refetches_with_fresh_dedup():
    stack = build_stack()
    stack.rooms.add_room(make_room("r1"))
    stack.rooms.messages["r1"] = [make_message("m1")]
    live = make_message("live")
    applied: list[bool] = []

    async def scenario():
        await stack.binder.activate("r1")
        applied.append(stack.sync.apply_incoming(live))
        await stack.binder.activate("r1")
        applied.append(stack.sync.apply_incoming(live))
        await stack.binder.leave()

    stack.lifecycle.start = lambda: None
    asyncio.run(scenario())

    assert applied == [True, True]
    assert stack.rooms.count("get_room") == 2
    assert stack.rooms.count("get_messages") == 2
    assert stack.push.signals("join_room") == ["r1", "r1"]


def test_bound_context_manager_leaves_on_exit():
    stack = build_stack()
    stack.rooms.add_room(make_room("r1"))

    async def scenario():
        async with stack.binder.bound("r1") as room:
            assert room is not None
            assert stack.binder.room_id == "r1"
        await stack.binder.wait_background()

    asyncio.run(scenario())
    assert stack.binder.room_id is None
    assert ("leave_room", "r1") in stack.rooms.calls


def test_invite_users_requires_room_and_names():
    stack = build_stack()
    stack.rooms.add_room(make_room("r1"))

    with pytest.raises(ValueError):
        asyncio.run(stack.binder.invite_users(["ann"]))

    async def scenario():
        await stack.binder.activate("r1")
        with pytest.raises(ValueError):
            await stack.binder.invite_users([" ", ""])
        await stack.binder.invite_users([" ann ", "bo"])
        await stack.binder.leave()

    stack.lifecycle.start = lambda: None
    asyncio.run(scenario())

    assert stack.rooms.invited == [("r1", ["ann", "bo"])]
    assert stack.rooms.count("get_room") == 2


def test_refresh_room_feeds_lifecycle():
    stack = build_stack()
    stack.rooms.add_room(make_room("r1", status="live"))

    async def scenario():
        await stack.binder.activate("r1")
        assert stack.lifecycle.state is LifecycleState.OBSERVING
        stack.rooms.add_room(make_room("r1", status="closed"))
        room = await stack.binder.refresh_room()
        state = stack.lifecycle.state
        await stack.binder.leave()
        return room, state

    room, state = asyncio.run(scenario())
    assert room is not None and room.status == "closed"
    assert state is LifecycleState.COUNTING_DOWN
