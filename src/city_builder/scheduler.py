"""Priority work queue with a single construction slot."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from city_builder import catalog
from city_builder.events import BuildCompleted, BuildStarted, EventBroadcaster, SchedulerStalled
from city_builder.models import Category, GridPoint, Priority, QueueItem, Resource, Structure
from city_builder.narrative import NarrativeAdvisor, NarrativeContext
from city_builder.planning import BuildDecision, BuildDecisionEngine, PlacementPlanner, is_placeable
from city_builder.world import WorldState


class SchedulerState(str, Enum):
    """Lifecycle of the construction slot."""

    IDLE = "idle"
    DECIDING = "deciding"
    DISPATCHED = "dispatched"
    STALLED = "stalled"


@dataclass(slots=True)
class SchedulerStatus:
    state: SchedulerState
    queue_length: int
    in_flight: str | None
    dispatched: int
    completed: int
    discarded: int
    stalls: int


class ConstructionScheduler:
    """Drains the build queue one construction at a time."""

    def __init__(
        self,
        world: WorldState,
        *,
        engine: BuildDecisionEngine,
        planner: PlacementPlanner,
        broadcaster: EventBroadcaster | None = None,
        advisor: NarrativeAdvisor | None = None,
        rng: random.Random | None = None,
        max_refill_attempts: int = 3,
        stall_search_radius: int = 200,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._world = world
        self._engine = engine
        self._planner = planner
        self._broadcaster = broadcaster or EventBroadcaster()
        self._advisor = advisor
        self._rng = rng or random.Random()
        self._max_refill_attempts = max(1, max_refill_attempts)
        self._stall_search_radius = stall_search_radius
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = logger or logging.getLogger("city_builder.scheduler")

        self._queue: list[QueueItem] = []
        self._in_flight: QueueItem | None = None
        self._deciding = False
        self._stalled = False
        self._dispatched = 0
        self._completed = 0
        self._discarded = 0
        self._stalls = 0
        self.last_decision: BuildDecision | None = None

    @property
    def in_flight(self) -> QueueItem | None:
        return self._in_flight

    @property
    def queue(self) -> list[QueueItem]:
        """Read-only copy of pending items in current order."""
        return list(self._queue)

    def enqueue(self, *items: QueueItem) -> None:
        self._queue.extend(items)

    def clear(self) -> None:
        """Drop all pending work and the in-flight slot (used by world reset)."""
        self._queue.clear()
        self._in_flight = None
        self._stalled = False
        self.last_decision = None
        self._planner.reset()

    def status(self) -> SchedulerStatus:
        if self._in_flight is not None:
            state = SchedulerState.DISPATCHED
        elif self._deciding:
            state = SchedulerState.DECIDING
        elif self._stalled:
            state = SchedulerState.STALLED
        else:
            state = SchedulerState.IDLE
        return SchedulerStatus(
            state=state,
            queue_length=len(self._queue),
            in_flight=self._in_flight.ticket_id if self._in_flight else None,
            dispatched=self._dispatched,
            completed=self._completed,
            discarded=self._discarded,
            stalls=self._stalls,
        )

    async def step(self) -> QueueItem | None:
        """Dispatch at most one valid item; return it, or ``None`` when nothing was dispatched."""
        if self._in_flight is not None or self._deciding:
            return None

        self._deciding = True
        try:
            for attempt in range(1, self._max_refill_attempts + 1):
                if not self._queue:
                    await self._refill()
                if self._world.ledger.is_critical(Resource.POWER):
                    self._prioritize_power()
                self._queue.sort(key=lambda item: item.priority)

                item = self._dispatch_first_valid()
                if item is not None:
                    self._stalled = False
                    return item
                self._logger.debug("queue_exhausted", extra={"attempt": attempt})

            return self._recover_from_stall()
        finally:
            self._deciding = False

    def on_construction_complete(self, ticket_id: str | None = None) -> Structure | None:
        """Place the in-flight item; duplicate or stale notifications are ignored."""
        item = self._in_flight
        if item is None:
            self._logger.debug("completion_ignored", extra={"ticket_id": ticket_id, "reason": "nothing_in_flight"})
            return None
        if ticket_id is not None and ticket_id != item.ticket_id:
            self._logger.debug("completion_ignored", extra={"ticket_id": ticket_id, "reason": "ticket_mismatch"})
            return None

        metadata = catalog.describe(item.category, self._rng, day=self._world.day, built_at=self._clock())
        structure = self._world.add_structure(
            Structure(
                id="",
                category=item.category,
                model_key=item.model_key,
                position=item.position,
                orientation=item.orientation,
                footprint=item.footprint,
                metadata=metadata,
                scale=item.scale,
            )
        )
        self._in_flight = None
        self._completed += 1
        self._logger.info(
            "build_completed",
            extra={"structure_id": structure.id, "structure_name": metadata.name, "model_key": structure.model_key},
        )
        self._broadcaster.publish(BuildCompleted.from_structure(structure))
        return structure

    async def _refill(self) -> None:
        decision = self._engine.decide(self._world)
        if self._advisor is not None and self._advisor.enabled and decision.rule != "critical_shortage":
            context = NarrativeContext.from_world(self._world)
            hint = await self._advisor.get_next_build_advisory(context, decision)
            if hint is not decision:
                decision = self._engine.decide(self._world, hint.category)
                if decision.rule == "advisory":
                    decision.reason = hint.reason
        self.last_decision = decision
        items = self._planner.plan_batch(self._world, decision)
        self._queue.extend(items)
        self._logger.info(
            "queue_refilled",
            extra={"category": decision.category.value, "rule": decision.rule, "items": len(items)},
        )

    def _prioritize_power(self) -> None:
        for index, item in enumerate(self._queue):
            if item.category is Category.POWER and is_placeable(self._world, item):
                self._queue.insert(0, replace(self._queue.pop(index), priority=Priority.EMERGENCY))
                return

        position = self._planner.emergency_position(self._world, self._stall_search_radius // 2)
        if position is None:
            self._logger.warning("emergency_power_unplaceable", extra={"net_power": self._world.ledger.net_power()})
            return
        self._logger.warning(
            "emergency_power_injected",
            extra={"net_power": self._world.ledger.net_power(), "position": (position.x, position.z)},
        )
        self._queue.insert(0, self._emergency_item(position))

    def _emergency_item(
        self,
        position: GridPoint,
        category: Category = Category.POWER,
        reason: str | None = None,
    ) -> QueueItem:
        return self._planner.queue_category_build(
            category,
            position,
            reason=reason or f"Critical: power deficit (net {self._world.ledger.net_power():g})",
            priority=Priority.EMERGENCY,
        )

    def _dispatch_first_valid(self) -> QueueItem | None:
        while self._queue:
            item = self._queue.pop(0)
            if not is_placeable(self._world, item):
                self._discarded += 1
                self._logger.debug(
                    "queue_item_discarded",
                    extra={"ticket_id": item.ticket_id, "position": (item.position.x, item.position.z)},
                )
                continue
            self._dispatch(item)
            return item
        return None

    def _dispatch(self, item: QueueItem) -> None:
        self._in_flight = item
        self._dispatched += 1
        self._logger.info(
            "build_started",
            extra={
                "ticket_id": item.ticket_id,
                "category": item.category.value,
                "model_key": item.model_key,
                "position": (item.position.x, item.position.z),
                "reason": item.reason,
            },
        )
        self._broadcaster.publish(BuildStarted.from_item(item))

    def _recover_from_stall(self) -> QueueItem | None:
        self._stalled = True
        self._stalls += 1
        self._logger.warning(
            "scheduler_stalled",
            extra={"attempts": self._max_refill_attempts, "queue_length": len(self._queue)},
        )
        position = self._planner.emergency_position(self._world, self._stall_search_radius)
        recovered = position is not None
        self._broadcaster.publish(
            SchedulerStalled(
                attempts=self._max_refill_attempts,
                queue_length=len(self._queue),
                recovered=recovered,
            )
        )
        if position is None:
            return None
        self._stalled = False
        category = Category.POWER
        reason = None
        if not self._world.ledger.is_critical(Resource.POWER) and self.last_decision is not None:
            category = self.last_decision.category
            reason = f"Recovery placement: {self.last_decision.reason}"
        item = self._emergency_item(position, category, reason)
        self._dispatch(item)
        return item
