"""Composition root wiring the world, planners, scheduler, narrative and build loop."""

from __future__ import annotations

import logging
import random
from dataclasses import asdict
from pathlib import Path
from typing import Any

from city_builder.commands import (
    ActionComplete,
    ActionType,
    Command,
    RequestAiAction,
    RequestState,
    Reset,
    SetSpeed,
    SyncState,
    parse_command,
)
from city_builder.events import (
    Event,
    EventBroadcaster,
    InMemoryEventLog,
    JsonlEventSink,
    WorldReset,
    to_message,
)
from city_builder.models import QueueItem, Structure
from city_builder.narrative import NarrativeAdvisor, OpenAICompatibleGenerator, TextGenerator
from city_builder.planning import BuildDecision, BuildDecisionEngine, DecisionPolicy, PlacementPlanner, build_planner
from city_builder.runtime import BuildLoop
from city_builder.scheduler import ConstructionScheduler
from city_builder.telemetry import LoggingTelemetry, Telemetry
from city_builder.world import WorldState


class CityAgent:
    """Owns every component of one autonomous colony builder."""

    def __init__(
        self,
        world: WorldState,
        *,
        engine: BuildDecisionEngine,
        planner: PlacementPlanner,
        scheduler: ConstructionScheduler,
        runtime: BuildLoop,
        broadcaster: EventBroadcaster,
        advisor: NarrativeAdvisor,
        event_log: InMemoryEventLog | None = None,
        telemetry: Telemetry | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.world = world
        self.engine = engine
        self.planner = planner
        self.scheduler = scheduler
        self.runtime = runtime
        self.broadcaster = broadcaster
        self.advisor = advisor
        self.event_log = event_log or InMemoryEventLog()
        self._logger = logger or logging.getLogger("city_builder.agent")

        self.broadcaster.subscribe(self.event_log)
        if telemetry is not None:
            self.broadcaster.subscribe(lambda event: telemetry.emit(event.type, asdict(event)))

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        *,
        generator: TextGenerator | None = None,
        rng: random.Random | None = None,
        event_log_path: str | Path | None = None,
    ) -> CityAgent:
        rng = rng or random.Random(settings.rng_seed)
        if generator is None and settings.llm_api_key:
            generator = OpenAICompatibleGenerator(
                api_key=settings.llm_api_key,
                model=settings.llm_model,
                base_url=settings.llm_base_url,
            )

        world = WorldState.from_settings(settings)
        engine = BuildDecisionEngine(DecisionPolicy.from_settings(settings))
        planner = build_planner(settings, rng)
        broadcaster = EventBroadcaster()
        advisor = NarrativeAdvisor(generator, timeout_seconds=settings.narrative_timeout_seconds)
        scheduler = ConstructionScheduler(
            world,
            engine=engine,
            planner=planner,
            broadcaster=broadcaster,
            advisor=advisor,
            rng=rng,
            max_refill_attempts=settings.max_refill_attempts,
            stall_search_radius=settings.stall_search_radius,
        )
        runtime = BuildLoop.from_settings(settings, scheduler, world, advisor=advisor, broadcaster=broadcaster)

        path = event_log_path or settings.event_log_path
        if path:
            broadcaster.subscribe(JsonlEventSink(path))

        return cls(
            world,
            engine=engine,
            planner=planner,
            scheduler=scheduler,
            runtime=runtime,
            broadcaster=broadcaster,
            advisor=advisor,
            telemetry=LoggingTelemetry(),
        )

    def decide(self) -> BuildDecision:
        """Rule-based decision for the current world, without side effects."""
        return self.engine.decide(self.world)

    def snapshot(self) -> dict[str, Any]:
        return self.world.snapshot()

    async def start(self) -> None:
        await self.runtime.start()

    async def stop(self) -> None:
        await self.runtime.stop()

    def reset(self) -> dict[str, Any]:
        """Drop pending work, restore the baseline world and announce it."""
        self.runtime.cancel_timer()
        self.scheduler.clear()
        self.world.reset()
        snapshot = self.world.snapshot()
        self.broadcaster.publish(WorldReset(snapshot=snapshot))
        self._logger.info("agent_reset", extra={"structures": snapshot["total_structure_count"]})
        return snapshot

    async def handle_command(self, payload: Any) -> dict[str, Any] | None:
        """Validate and apply one inbound message; malformed input returns ``None``."""
        command = parse_command(payload)
        if command is None:
            return None
        return await self.apply(command)

    async def apply(self, command: Command) -> dict[str, Any] | None:
        if isinstance(command, ActionComplete):
            if command.action_type is ActionType.ARRIVED:
                self._logger.debug("builder_arrived", extra={"position": command.position})
                return None
            structure = await self.runtime.notify_complete(command.ticket_id)
            return {"type": "BUILD_COMPLETED", "payload": structure.as_dict()} if structure else None
        if isinstance(command, SetSpeed):
            speed = await self.runtime.set_speed(command.speed)
            return {"type": "SPEED_CHANGED", "payload": {"speed": speed}}
        if isinstance(command, RequestAiAction):
            item = await self.runtime.request_immediate_decision()
            return {"type": "AI_ACTION", "payload": {"ticket_id": item.ticket_id if item else None}}
        if isinstance(command, Reset):
            return {"type": WorldReset.type, "payload": self.reset()}
        if isinstance(command, RequestState):
            return {"type": WorldReset.type, "payload": self.snapshot()}
        if isinstance(command, SyncState):
            structures = command.to_structures()
            self.world.sync_structures(structures)
            self._logger.info("world_synced", extra={"structures": len(structures)})
            return {"type": WorldReset.type, "payload": self.snapshot()}
        raise TypeError(f"Unhandled command: {type(command).__name__}")

    async def simulate(self, builds: int) -> list[Structure]:
        """Step and complete ``builds`` constructions in-process, without timers."""
        placed: list[Structure] = []
        for _ in range(builds):
            item: QueueItem | None = await self.scheduler.step()
            if item is None:
                self._logger.warning("simulation_halted", extra={"placed": len(placed)})
                break
            structure = await self.runtime.notify_complete(item.ticket_id)
            await self.runtime.drain_narrations()
            if structure is not None:
                placed.append(structure)
        return placed

    def recent_events(self, limit: int = 20) -> list[dict[str, Any]]:
        events: list[Event] = self.event_log.list_recent(limit)
        return [to_message(event) for event in events]
