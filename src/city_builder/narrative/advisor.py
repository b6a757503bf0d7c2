"""Narrative commentary and advisory hints with a timeout and a local fallback.

Both operations race the text generator against ``timeout_seconds``. The
generator runs in a worker thread; on timeout the thread is left to finish on
its own and its result is ignored.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Sequence

from city_builder.models import Category
from city_builder.narrative.providers import TextGenerator
from city_builder.planning.engine import BuildDecision
from city_builder.world import WorldState

DEFAULT_PHRASES_KEY = "default"

FALLBACK_PHRASES: dict[str, tuple[str, ...]] = {
    Category.RESIDENTIAL.value: (
        "More homes means more neighbors. The colony feels less empty every day.",
        "Another roof against the dust storms. Someone will call this place home tonight.",
        "Housing first. A colony is only as strong as the people who sleep in it.",
    ),
    Category.COMMERCIAL.value: (
        "A market is where a settlement starts to feel like a town.",
        "Trade routes are forming. I can almost hear the haggling.",
    ),
    Category.INDUSTRIAL.value: (
        "Fabrication keeps the lights on and the wrenches turning.",
        "Industry sits out past the edge of town, humming away from the homes.",
    ),
    Category.POWER.value: (
        "More solar panels. Every watt counts out here.",
        "The grid breathes easier with another array online.",
        "Power is the heartbeat of the colony. I keep it steady.",
    ),
    Category.WATER.value: (
        "Water is life. The new reservoir should keep everyone hydrated.",
        "Another tank filled. Thirst is one problem we will not have.",
    ),
    Category.FOOD.value: (
        "Fresh greens from the hydroponics bay. Nobody goes hungry on my watch.",
        "The farms are growing faster than I expected.",
    ),
    Category.ECO.value: (
        "Life support is humming. Every breath here is engineered.",
        "The air recyclers are holding. Good.",
    ),
    Category.PARK.value: (
        "A little green goes a long way for morale.",
        "Trees on a frontier world. Worth every drop of water.",
    ),
    Category.ROAD.value: ("Roads stitch the neighborhoods together.",),
    DEFAULT_PHRASES_KEY: (
        "Another day of building. The colony grows, one block at a time.",
        "Step by step, the skyline rises.",
    ),
}

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


@dataclass(slots=True)
class NarrativeContext:
    """Inputs for a commentary or advisory request."""

    recent_categories: list[str] = field(default_factory=list)
    recent_build_summary: str = ""
    mood: str = "steady"
    day: int = 1
    time_of_day: float = 12.0
    total_structures: int = 0
    stats: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_world(cls, world: WorldState, *, recent: int = 5) -> NarrativeContext:
        structures = world.recent_structures(recent)
        summary = ", ".join(
            (s.metadata.name if s.metadata else s.model_key) for s in structures
        )
        return cls(
            recent_categories=[s.category.value for s in structures],
            recent_build_summary=summary,
            mood=world.mood,
            day=world.day,
            time_of_day=world.time_of_day,
            total_structures=len(world.structures),
            stats=world.summary(),
        )

    def dominant_category(self) -> str | None:
        if not self.recent_categories:
            return None
        return Counter(self.recent_categories).most_common(1)[0][0]


def fallback_thought(context: NarrativeContext) -> str:
    """Deterministic phrase keyed by the dominant recent build category."""
    key = context.dominant_category()
    phrases: Sequence[str] = FALLBACK_PHRASES.get(key or DEFAULT_PHRASES_KEY) or FALLBACK_PHRASES[DEFAULT_PHRASES_KEY]
    return phrases[context.total_structures % len(phrases)]


class NarrativeAdvisor:
    """Wraps an optional text generator with a timeout and deterministic fallbacks."""

    def __init__(
        self,
        generator: TextGenerator | None = None,
        *,
        timeout_seconds: float = 4.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self._generator = generator
        self._timeout_seconds = timeout_seconds
        self._logger = logger or logging.getLogger("city_builder.narrative")

    @property
    def enabled(self) -> bool:
        return self._generator is not None

    async def generate_thought(self, context: NarrativeContext) -> str:
        """Return a short first-person commentary; never raises, never hangs."""
        text = await self._complete(_thought_prompt(context), task="thought")
        if text:
            return text
        return fallback_thought(context)

    async def get_next_build_advisory(self, context: NarrativeContext, fallback: BuildDecision) -> BuildDecision:
        """Ask the generator what to build; return ``fallback`` on any failure."""
        text = await self._complete(_advisory_prompt(context), task="advisory")
        if not text:
            return fallback
        decision = parse_advisory(text)
        if decision is None:
            self._logger.warning("advisory_unparseable", extra={"response": text[:200]})
            return fallback
        return decision

    async def _complete(self, prompt: str, *, task: str) -> str | None:
        if self._generator is None:
            return None
        try:
            text = await asyncio.wait_for(
                asyncio.to_thread(self._generator.complete, prompt),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError:
            self._logger.warning("narrative_timeout", extra={"task": task, "timeout": self._timeout_seconds})
            return None
        except Exception:  # noqa: BLE001 - any generator failure falls back locally.
            self._logger.warning("narrative_failed", extra={"task": task}, exc_info=True)
            return None
        text = str(text or "").strip()
        return text or None


def parse_advisory(text: str) -> BuildDecision | None:
    match = _JSON_OBJECT.search(text)
    if not match:
        return None
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None
    try:
        category = Category(str(payload.get("decision", "")).strip().lower())
    except ValueError:
        return None
    if category is Category.ROAD:
        return None
    reason = str(payload.get("reason") or "Advisor suggestion").strip()
    return BuildDecision(category=category, reason=reason, rule="advisory")


def _thought_prompt(context: NarrativeContext) -> str:
    return (
        "You are the builder of a young space colony. In one or two sentences, first person, "
        f"share a thought about your recent work. Mood: {context.mood}. Day {context.day}. "
        f"Recent builds: {context.recent_build_summary or 'none yet'}. "
        f"Colony stats: {json.dumps(context.stats, sort_keys=True, default=str)}"
    )


def _advisory_prompt(context: NarrativeContext) -> str:
    choices = "|".join(c.value for c in Category if c is not Category.ROAD)
    return (
        "You are an AI city planner for a space colony. Decide what to build next. "
        "Housing comes first, workers need jobs, and infrastructure (power, water, food) "
        "should keep pace with the buildings.\n"
        f"Colony stats: {json.dumps(context.stats, sort_keys=True, default=str)}\n"
        'Respond with JSON only: {"decision": "' + choices + '", "reason": "brief explanation"}'
    )
