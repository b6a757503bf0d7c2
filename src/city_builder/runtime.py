"""Asyncio build loop: decision ticks, the construction timer and the game clock."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from city_builder.events import EventBroadcaster, NarrativeLogged, TimeUpdated
from city_builder.models import QueueItem, Structure
from city_builder.narrative import NarrativeAdvisor, NarrativeContext
from city_builder.scheduler import ConstructionScheduler
from city_builder.world import WorldState


class BuildLoop:
    """Drives the scheduler on a speed-scaled period and completes builds on a timer.

    Exactly one construction timer exists at a time. Completion may come from
    the timer or from :meth:`notify_complete`; whichever arrives second is a
    no-op because the scheduler ignores completions with nothing in flight.
    """

    def __init__(
        self,
        scheduler: ConstructionScheduler,
        world: WorldState,
        *,
        advisor: NarrativeAdvisor | None = None,
        broadcaster: EventBroadcaster | None = None,
        tick_base_period_seconds: float = 5.0,
        build_duration_seconds: float = 3.0,
        speed_min: float = 0.1,
        speed_max: float = 10.0,
        time_scale_hours_per_second: float = 24 / 600,
        clock_interval_seconds: float = 1.0,
        speed: float = 1.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._world = world
        self._advisor = advisor or NarrativeAdvisor()
        self._broadcaster = broadcaster or EventBroadcaster()
        self._tick_base_period_seconds = tick_base_period_seconds
        self._build_duration_seconds = build_duration_seconds
        self._speed_min = speed_min
        self._speed_max = speed_max
        self._time_scale = time_scale_hours_per_second
        self._clock_interval_seconds = clock_interval_seconds
        self._logger = logger or logging.getLogger("city_builder.runtime")
        self._speed = self.clamp_speed(speed)

        self._tick_task: asyncio.Task[None] | None = None
        self._clock_task: asyncio.Task[None] | None = None
        self._timer_task: asyncio.Task[None] | None = None
        self._timer_ticket: str | None = None
        self._timer_started_at = 0.0
        self._timer_duration = 0.0
        self._narrations: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        scheduler: ConstructionScheduler,
        world: WorldState,
        *,
        advisor: NarrativeAdvisor | None = None,
        broadcaster: EventBroadcaster | None = None,
    ) -> BuildLoop:
        return cls(
            scheduler,
            world,
            advisor=advisor,
            broadcaster=broadcaster,
            tick_base_period_seconds=settings.tick_base_period_seconds,
            build_duration_seconds=settings.build_duration_seconds,
            speed_min=settings.speed_min,
            speed_max=settings.speed_max,
            time_scale_hours_per_second=settings.time_scale_hours_per_second,
        )

    @property
    def speed(self) -> float:
        return self._speed

    @property
    def running(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    @property
    def tick_period(self) -> float:
        return self._tick_base_period_seconds / self._speed

    @property
    def build_duration(self) -> float:
        return self._build_duration_seconds / self._speed

    @property
    def timer_armed(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def clamp_speed(self, speed: float) -> float:
        return max(self._speed_min, min(self._speed_max, float(speed)))

    async def start(self) -> None:
        """Start the tick and clock tasks once."""
        if self.running:
            return
        self._tick_task = asyncio.create_task(self._tick_loop(), name="city-builder-tick")
        self._clock_task = asyncio.create_task(self._clock_loop(), name="city-builder-clock")
        self._logger.info("build_loop_started", extra={"speed": self._speed, "tick_period": self.tick_period})

    async def stop(self) -> None:
        """Cancel every task owned by the loop and wait for them to unwind."""
        tasks = [self._tick_task, self._clock_task, self._timer_task, *self._narrations]
        self._tick_task = None
        self._clock_task = None
        self._timer_task = None
        self._timer_ticket = None
        for task in tasks:
            if task is not None:
                task.cancel()
        for task in tasks:
            if task is None:
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._narrations.clear()
        self._logger.info("build_loop_stopped")

    async def set_speed(self, speed: float) -> float:
        """Clamp and apply a new speed; the queue and the in-flight item are kept."""
        previous = self._speed
        self._speed = self.clamp_speed(speed)
        self._logger.info("speed_changed", extra={"requested": speed, "speed": self._speed, "previous": previous})

        if self.running:
            old = self._tick_task
            self._tick_task = asyncio.create_task(self._tick_loop(delay_first=True), name="city-builder-tick")
            if old is not None:
                old.cancel()
                try:
                    await old
                except asyncio.CancelledError:
                    pass

        if self.timer_armed and self._timer_ticket is not None:
            loop = asyncio.get_running_loop()
            elapsed = loop.time() - self._timer_started_at
            remaining_fraction = max(0.0, 1.0 - elapsed / self._timer_duration) if self._timer_duration else 0.0
            ticket = self._timer_ticket
            self.cancel_timer()
            self._arm_timer(ticket, remaining_fraction * self.build_duration)
        return self._speed

    async def tick(self) -> QueueItem | None:
        """Run one scheduler step and arm the construction timer for a dispatched item."""
        item = await self._scheduler.step()
        if item is not None:
            self._arm_timer(item.ticket_id, self.build_duration)
        return item

    async def request_immediate_decision(self) -> QueueItem | None:
        """Out-of-band step; the scheduler's guards keep it from double dispatching."""
        self._logger.info("immediate_decision_requested")
        return await self.tick()

    async def notify_complete(self, ticket_id: str | None = None) -> Structure | None:
        """External completion signal; cancels the timer when it matches the in-flight item."""
        in_flight = self._scheduler.in_flight
        if in_flight is not None and (ticket_id is None or ticket_id == in_flight.ticket_id):
            self.cancel_timer()
        return self._complete(ticket_id)

    def cancel_timer(self) -> None:
        task = self._timer_task
        self._timer_task = None
        self._timer_ticket = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def drain_narrations(self) -> None:
        """Wait for pending commentary tasks."""
        if self._narrations:
            await asyncio.gather(*list(self._narrations), return_exceptions=True)

    def _arm_timer(self, ticket_id: str, duration: float) -> None:
        self.cancel_timer()
        self._timer_ticket = ticket_id
        self._timer_started_at = asyncio.get_running_loop().time()
        self._timer_duration = duration
        self._timer_task = asyncio.create_task(
            self._construction_timer(ticket_id, duration),
            name=f"city-builder-build-{ticket_id[:8]}",
        )
        self._logger.debug("construction_timer_armed", extra={"ticket_id": ticket_id, "duration": duration})

    async def _construction_timer(self, ticket_id: str, duration: float) -> None:
        await asyncio.sleep(duration)
        if self._timer_ticket == ticket_id:
            self._timer_task = None
            self._timer_ticket = None
        self._complete(ticket_id)

    def _complete(self, ticket_id: str | None) -> Structure | None:
        structure = self._scheduler.on_construction_complete(ticket_id)
        if structure is not None:
            task = asyncio.create_task(self._narrate(), name="city-builder-narration")
            self._narrations.add(task)
            task.add_done_callback(self._narrations.discard)
        return structure

    async def _narrate(self) -> None:
        context = NarrativeContext.from_world(self._world)
        thought = await self._advisor.generate_thought(context)
        self._broadcaster.publish(
            NarrativeLogged(
                thought=thought,
                mood=context.mood,
                day_context={"day": context.day, "time_of_day": context.time_of_day, **context.stats},
                recent_build_summary=context.recent_build_summary,
            )
        )

    async def _tick_loop(self, *, delay_first: bool = False) -> None:
        if delay_first:
            await asyncio.sleep(self.tick_period)
        while True:
            try:
                await self.tick()
            except Exception:  # noqa: BLE001 - one failed step must not end the loop.
                self._logger.exception("tick_failed")
            await asyncio.sleep(self.tick_period)

    async def _clock_loop(self) -> None:
        while True:
            await asyncio.sleep(self._clock_interval_seconds)
            self.advance_clock(self._clock_interval_seconds)

    def advance_clock(self, seconds: float) -> TimeUpdated:
        new_day = self._world.advance_time(self._time_scale * seconds)
        event = TimeUpdated(time_of_day=self._world.time_of_day, day=self._world.day)
        if new_day:
            self._logger.info("new_day", extra={"day": self._world.day, "morale": self._world.morale})
        self._broadcaster.publish(event)
        return event
