from __future__ import annotations

import asyncio
import logging
import random

from city_builder.events import BuildCompleted, BuildStarted, EventBroadcaster, InMemoryEventLog, SchedulerStalled
from city_builder.models import Category, GridPoint, Priority, QueueItem, Structure
from city_builder.narrative import NarrativeAdvisor, StaticGenerator
from city_builder.planning import BuildDecision, BuildDecisionEngine, RingPlacementPlanner
from city_builder.scheduler import ConstructionScheduler, SchedulerState
from city_builder.world import WorldState


class NoRoomPlanner(RingPlacementPlanner):
    """Never plans anything; the emergency search returns a fixed answer."""

    def __init__(self, emergency: GridPoint | None) -> None:
        super().__init__(rng=random.Random(0))
        self.emergency = emergency

    def plan_batch(self, world, decision):
        return []

    def emergency_position(self, world, search_radius):
        return self.emergency


def _scheduler(world: WorldState, *, planner=None, advisor=None) -> tuple[ConstructionScheduler, InMemoryEventLog]:
    broadcaster = EventBroadcaster()
    log = InMemoryEventLog()
    broadcaster.subscribe(log)
    scheduler = ConstructionScheduler(
        world,
        engine=BuildDecisionEngine(),
        planner=planner or RingPlacementPlanner(rng=random.Random(42)),
        broadcaster=broadcaster,
        advisor=advisor,
        rng=random.Random(42),
    )
    return scheduler, log


def _item(category: Category, x: int, z: int, priority: int = Priority.BUILDING) -> QueueItem:
    return QueueItem(category=category, model_key="building_A", position=GridPoint(x, z), priority=priority)


def test_second_item_at_same_cell_is_discarded() -> None:
    async def _run() -> tuple[QueueItem | None, QueueItem | None, QueueItem, int]:
        world = WorldState(exclusion_zones=())
        scheduler, _ = _scheduler(world)
        first = _item(Category.RESIDENTIAL, 4, 4)
        second = _item(Category.RESIDENTIAL, 4, 4)
        scheduler.enqueue(first, second)

        dispatched = await scheduler.step()
        scheduler.on_construction_complete(dispatched.ticket_id)
        following = await scheduler.step()
        return dispatched, following, second, scheduler.status().discarded

    dispatched, following, second, discarded = asyncio.run(_run())
    assert dispatched is not None and dispatched.position == GridPoint(4, 4)
    assert following is not None and following.ticket_id != second.ticket_id
    assert discarded == 1


def test_only_one_item_is_in_flight() -> None:
    async def _run() -> tuple[QueueItem | None, QueueItem | None, int]:
        world = WorldState()
        scheduler, log = _scheduler(world)
        scheduler.enqueue(_item(Category.RESIDENTIAL, 40, 40), _item(Category.RESIDENTIAL, 44, 40))
        first = await scheduler.step()
        second = await scheduler.step()
        return first, second, len(log.of_type(BuildStarted))

    first, second, started = asyncio.run(_run())
    assert first is not None
    assert second is None
    assert started == 1


def test_completion_places_structure_and_duplicates_are_ignored() -> None:
    async def _run():
        world = WorldState()
        scheduler, log = _scheduler(world)
        scheduler.enqueue(_item(Category.COMMERCIAL, 40, 40))
        item = await scheduler.step()
        wrong = scheduler.on_construction_complete("not-the-ticket")
        placed = scheduler.on_construction_complete(item.ticket_id)
        again = scheduler.on_construction_complete(item.ticket_id)
        return world, scheduler, log, wrong, placed, again

    world, scheduler, log, wrong, placed, again = asyncio.run(_run())
    assert wrong is None
    assert placed is not None and placed.metadata is not None
    assert again is None
    assert world.spatial.is_occupied(40, 40)
    assert [s.id for s in world.structures].count(placed.id) == 1
    assert len(log.of_type(BuildCompleted)) == 1
    assert scheduler.status().state is SchedulerState.IDLE


def test_critical_power_injects_emergency_solar_first() -> None:
    async def _run() -> tuple[QueueItem | None, list[QueueItem]]:
        world = WorldState(seed_baseline=False)
        scheduler, _ = _scheduler(world)
        scheduler.enqueue(_item(Category.RESIDENTIAL, 40, 40))
        item = await scheduler.step()
        return item, scheduler.queue

    item, remaining = asyncio.run(_run())
    assert item is not None
    assert item.category is Category.POWER
    assert item.priority == Priority.EMERGENCY
    assert item.position == GridPoint(24, 24)
    assert [queued.category for queued in remaining] == [Category.RESIDENTIAL]


def test_critical_power_promotes_queued_power_item() -> None:
    async def _run() -> QueueItem | None:
        world = WorldState(seed_baseline=False)
        scheduler, _ = _scheduler(world)
        power = _item(Category.POWER, 48, 48, priority=Priority.INFRASTRUCTURE)
        scheduler.enqueue(_item(Category.RESIDENTIAL, 40, 40, priority=Priority.EMERGENCY), power)
        return await scheduler.step()

    item = asyncio.run(_run())
    assert item is not None
    assert item.position == GridPoint(48, 48)
    assert item.priority == Priority.EMERGENCY


def test_critical_power_skips_stale_power_item() -> None:
    async def _run() -> QueueItem | None:
        world = WorldState(seed_baseline=False, exclusion_zones=())
        world.add_structure(Structure(id="", category=Category.RESIDENTIAL, model_key="m", position=GridPoint(0, 40)))
        world.spatial.occupy(40, 40)
        scheduler, _ = _scheduler(world)
        stale = _item(Category.POWER, 40, 40, priority=Priority.INFRASTRUCTURE)
        scheduler.enqueue(stale, _item(Category.RESIDENTIAL, 60, 60))
        return await scheduler.step()

    item = asyncio.run(_run())
    assert item is not None
    assert item.category is Category.POWER
    assert item.priority == Priority.EMERGENCY
    assert item.position != GridPoint(40, 40)


def test_starved_queue_stalls_with_warning_and_event(caplog) -> None:
    async def _run():
        world = WorldState()
        scheduler, log = _scheduler(world, planner=NoRoomPlanner(emergency=None))
        item = await scheduler.step()
        return item, scheduler.status(), log.of_type(SchedulerStalled)

    with caplog.at_level(logging.WARNING, logger="city_builder.scheduler"):
        item, status, stalled = asyncio.run(_run())

    assert item is None
    assert status.state is SchedulerState.STALLED
    assert status.stalls == 1
    assert len(stalled) == 1 and stalled[0].recovered is False
    assert "scheduler_stalled" in caplog.text


def test_stall_recovery_dispatches_last_decision_at_emergency_cell() -> None:
    async def _run():
        world = WorldState()
        scheduler, log = _scheduler(world, planner=NoRoomPlanner(emergency=GridPoint(60, 60)))
        item = await scheduler.step()
        return item, scheduler.status(), log.of_type(SchedulerStalled)

    item, status, stalled = asyncio.run(_run())
    assert item is not None
    assert item.position == GridPoint(60, 60)
    assert item.category is Category.RESIDENTIAL
    assert status.state is SchedulerState.DISPATCHED
    assert stalled[0].recovered is True


def test_advisory_hint_applies_only_when_rules_allow() -> None:
    async def _run(world: WorldState) -> BuildDecision | None:
        generator = StaticGenerator('{"decision": "park", "reason": "Trees please"}')
        scheduler, _ = _scheduler(world, advisor=NarrativeAdvisor(generator, timeout_seconds=1))
        await scheduler.step()
        return scheduler.last_decision

    fresh = asyncio.run(_run(WorldState()))
    assert fresh is not None and fresh.category is Category.RESIDENTIAL

    balanced = WorldState(seed_baseline=False)
    layout = (
        (Category.POWER, 9),
        (Category.WATER, 3),
        (Category.FOOD, 2),
        (Category.RESIDENTIAL, 12),
        (Category.COMMERCIAL, 4),
        (Category.INDUSTRIAL, 3),
        (Category.PARK, 1),
    )
    x = 100
    for category, count in layout:
        for _ in range(count):
            balanced.add_structure(Structure(id="", category=category, model_key="m", position=GridPoint(x, 100)))
            x += 4

    advised = asyncio.run(_run(balanced))
    assert advised is not None
    assert advised.category is Category.PARK
    assert advised.reason == "Trees please"


def test_clear_drops_queue_and_in_flight() -> None:
    async def _run() -> ConstructionScheduler:
        scheduler, _ = _scheduler(WorldState())
        scheduler.enqueue(_item(Category.RESIDENTIAL, 40, 40), _item(Category.RESIDENTIAL, 44, 40))
        await scheduler.step()
        scheduler.clear()
        return scheduler

    scheduler = asyncio.run(_run())
    assert scheduler.in_flight is None
    assert scheduler.queue == []
    assert scheduler.on_construction_complete() is None
