"""CLI-side handler wrappers and utility commands."""

from __future__ import annotations

import asyncio
from typing import Any

from city_builder.agent import CityAgent
from city_builder.models import Structure
from city_builder.planning import BuildDecision


class CliCommandHandler:
    """Simple sync-friendly facade over the async agent."""

    def __init__(self, agent: CityAgent) -> None:
        self._agent = agent

    def decide(self) -> BuildDecision:
        return self._agent.decide()

    def snapshot(self) -> dict[str, Any]:
        return self._agent.snapshot()

    def simulate(self, builds: int) -> list[Structure]:
        return asyncio.run(self._agent.simulate(builds))

    def run_for(self, seconds: float, speed: float = 1.0) -> dict[str, Any]:
        """Run the autonomous loop for a wall-clock duration and return the final snapshot."""

        async def _run() -> dict[str, Any]:
            await self._agent.runtime.set_speed(speed)
            await self._agent.start()
            try:
                await asyncio.sleep(seconds)
            finally:
                await self._agent.stop()
            return self._agent.snapshot()

        return asyncio.run(_run())

    def send(self, payload: dict[str, Any]) -> dict[str, Any] | None:
        return asyncio.run(self._agent.handle_command(payload))

    def recent_events(self, limit: int = 20) -> list[dict[str, Any]]:
        return self._agent.recent_events(limit)
