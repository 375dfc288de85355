from dropin_chat.event_bus import EventBus
from dropin_chat.events import CountdownEvent, SystemMessageEvent


def test_critical_event_retries_handler_and_delivers() -> None:
    bus = EventBus(critical_handler_retries=1)
    calls = {"count": 0}

    def flaky_handler(event: SystemMessageEvent) -> None:
        calls["count"] += 1
        if calls["count"] == 1:
            raise RuntimeError("transient failure")
        assert event.text == "hello"

    bus.subscribe(SystemMessageEvent, flaky_handler)
    delivered = bus.publish(
        SystemMessageEvent(source="test", text="hello", critical=True),
        critical=True,
    )

    metrics = bus.snapshot_metrics()
    assert delivered == 1
    assert calls["count"] == 2
    assert metrics.retried == 1
    assert metrics.delivered == 1
    assert metrics.handler_failures == 1


def test_non_critical_handler_failure_does_not_retry(caplog) -> None:
    bus = EventBus(critical_handler_retries=1)
    calls = {"count": 0}

    def always_fails(_event: SystemMessageEvent) -> None:
        calls["count"] += 1
        raise RuntimeError("fail")

    bus.subscribe(SystemMessageEvent, always_fails)
    assert bus.publish(SystemMessageEvent(source="test", text="hello")) == 0

    metrics = bus.snapshot_metrics()
    assert calls["count"] == 1
    assert metrics.handler_failures == 1
    assert metrics.retried == 0
    assert "Event handler failed topic=system_message" in caplog.text


def test_failing_handler_does_not_block_other_handlers() -> None:
    bus = EventBus()
    seen: list[str] = []

    def broken(_event: SystemMessageEvent) -> None:
        raise RuntimeError("boom")

    bus.subscribe(SystemMessageEvent, broken)
    bus.subscribe(SystemMessageEvent, lambda event: seen.append(event.text))

    assert bus.publish(SystemMessageEvent(source="test", text="still here")) == 1
    assert seen == ["still here"]


def test_unsubscribe_is_idempotent_and_stops_delivery() -> None:
    bus = EventBus()
    seen: list[int] = []
    subscription = bus.subscribe(
        CountdownEvent, lambda event: seen.append(event.remaining)
    )

    bus.publish(CountdownEvent(source="test", room_id="r1", remaining=5))
    subscription.unsubscribe()
    subscription.unsubscribe()
    bus.publish(CountdownEvent(source="test", room_id="r1", remaining=4))

    assert seen == [5]
    assert subscription.active is False
    assert bus.handler_count(CountdownEvent) == 0


def test_subscription_released_by_context_manager() -> None:
    bus = EventBus()
    with bus.subscribe(SystemMessageEvent, lambda _event: None):
        assert bus.handler_count(SystemMessageEvent) == 1
    assert bus.handler_count(SystemMessageEvent) == 0


def test_handler_released_mid_dispatch_is_skipped() -> None:
    bus = EventBus()
    seen: list[str] = []
    later = None

    def first(_event: SystemMessageEvent) -> None:
        seen.append("first")
        assert later is not None
        later.unsubscribe()

    bus.subscribe(SystemMessageEvent, first)
    later = bus.subscribe(SystemMessageEvent, lambda _event: seen.append("later"))

    bus.publish(SystemMessageEvent(source="test", text="x"))
    assert seen == ["first"]


def test_publish_without_subscribers_counts_unhandled() -> None:
    bus = EventBus()
    assert bus.publish(SystemMessageEvent(source="test", text="nobody")) == 0
    assert bus.snapshot_metrics().unhandled == 1
