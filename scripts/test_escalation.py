import asyncio

from alerting.models import AlertRule, EscalationLevel, EscalationPolicy, MetricSample
from alerting.scheduler import ESCALATION


def _rule(max_level=3, enabled=True):
    return AlertRule(
        id="cpu",
        name="CPU high",
        source="system",
        metric="cpu",
        condition="gt",
        threshold=90,
        severity="critical",
        channels=["ops"],
        escalation_policy=EscalationPolicy(
            id="p",
            levels=[
                EscalationLevel(level=1, delay=5, channels=["ops"]),
                EscalationLevel(level=2, delay=10, channels=["oncall"]),
                EscalationLevel(level=3, delay=15, channels=["manager"]),
            ],
            max_level=max_level,
            enabled=enabled,
        ),
    )


async def _trigger(service):
    (alert,) = await service.evaluate_rules(MetricSample("cpu", 95))
    return alert


def test_levels_fire_in_order_and_stop_at_max(service, clock, notifier):
    service.add_rule(_rule())

    async def scenario():
        alert = await _trigger(service)
        assert alert.escalation_level == 0
        assert service.timers.pending(ESCALATION, alert.id) == clock.now.replace(minute=5)
        assert alert.next_escalation_at is not None

        clock.advance(4)
        await service.run_due_timers()
        assert alert.escalation_level == 0

        clock.advance(1)
        await service.run_due_timers()
        assert alert.escalation_level == 1
        clock.advance(10)
        await service.run_due_timers()
        assert alert.escalation_level == 2
        clock.advance(15)
        await service.run_due_timers()
        assert alert.escalation_level == 3
        assert service.timers.pending(ESCALATION, alert.id) is None
        assert alert.next_escalation_at is None

        clock.advance(120)
        await service.run_due_timers()
        assert alert.escalation_level == 3
        # создание + уровни 1..3
        assert notifier.channels_for(alert.id) == ["ops", "ops", "oncall", "manager"]

    asyncio.run(scenario())


def test_max_level_caps_escalation(service, clock):
    service.add_rule(_rule(max_level=1))

    async def scenario():
        alert = await _trigger(service)
        assert alert.max_escalation_level == 1
        clock.advance(60)
        await service.run_due_timers()
        clock.advance(60)
        await service.run_due_timers()
        assert alert.escalation_level == 1
        assert service.timers.pending_count(ESCALATION) == 0

    asyncio.run(scenario())


def test_direct_alert_linked_to_rule_escalates(service, clock, notifier):
    service.add_rule(_rule(max_level=2))

    async def scenario():
        alert = await service.create_alert(title="manual cpu", severity="high", channels=["ops"], rule_id="cpu")
        assert alert.rule_id == "cpu"
        assert alert.max_escalation_level == 2
        assert service.timers.pending(ESCALATION, alert.id) is not None
        clock.advance(5)
        await service.run_due_timers()
        clock.advance(10)
        await service.run_due_timers()
        assert alert.escalation_level == 2
        assert notifier.channels_for(alert.id) == ["ops", "ops", "oncall"]

        unlinked = await service.create_alert(title="manual", channels=["ops"])
        assert service.timers.pending(ESCALATION, unlinked.id) is None

    asyncio.run(scenario())


def test_disabled_policy_schedules_nothing(service, clock):
    service.add_rule(_rule(enabled=False))

    async def scenario():
        alert = await _trigger(service)
        assert service.timers.pending(ESCALATION, alert.id) is None
        clock.advance(60)
        await service.run_due_timers()
        assert alert.escalation_level == 0

    asyncio.run(scenario())


def test_acknowledge_cancels_and_is_terminal(service, clock, notifier):
    service.add_rule(_rule())

    async def scenario():
        alert = await _trigger(service)
        assert service.acknowledge_alert(alert.id, "alice") is True
        assert alert.status == "acknowledged"
        assert alert.acknowledged_by == "alice"
        assert service.timers.pending(ESCALATION, alert.id) is None
        clock.advance(60)
        await service.run_due_timers()
        assert alert.escalation_level == 0
        assert service.acknowledge_alert(alert.id, "bob") is False
        assert service.suppress_alert(alert.id, "noise", "bob") is False

    asyncio.run(scenario())


def test_stale_timer_after_resolve_is_noop(service, clock, notifier):
    """Таймер, не снятый отменой, при срабатывании видит resolved и ничего не делает."""
    service.add_rule(_rule())

    async def scenario():
        alert = await _trigger(service)
        # меняем статус в обход отмены, имитируя гонку
        alert.status = "resolved"
        clock.advance(5)
        fired = await service.run_due_timers()
        assert fired == 1
        assert alert.escalation_level == 0
        assert service.timers.pending(ESCALATION, alert.id) is None
        assert notifier.channels_for(alert.id) == ["ops"]

    asyncio.run(scenario())


def test_resolve_from_acknowledged(service, clock):
    service.add_rule(_rule())

    async def scenario():
        alert = await _trigger(service)
        clock.advance(3)
        service.acknowledge_alert(alert.id, "alice")
        clock.advance(7)
        assert service.resolve_alert(alert.id, "alice") is True
        assert alert.resolved_at == clock.now
        assert service.resolve_alert(alert.id, "alice") is False

    asyncio.run(scenario())


def test_unknown_ids_return_false(service):
    async def scenario():
        assert service.acknowledge_alert("nope", "x") is False
        assert service.resolve_alert("nope", "x") is False
        assert service.suppress_alert("nope", "r", "x") is False
        assert await service.unsuppress_alert("nope") is False
        assert await service.test_channel("nope") is False

    asyncio.run(scenario())
