from __future__ import annotations

import asyncio
import json
import time

import pytest

from city_builder.models import Category
from city_builder.narrative import (
    FALLBACK_PHRASES,
    NarrativeAdvisor,
    NarrativeContext,
    OpenAICompatibleGenerator,
    StaticGenerator,
    TextGenerationError,
    fallback_thought,
    parse_advisory,
)
from city_builder.planning import BuildDecision
from city_builder.world import WorldState


class SlowGenerator:
    def complete(self, prompt: str) -> str:
        time.sleep(0.3)
        return "too late"


class FailingGenerator:
    def complete(self, prompt: str) -> str:
        raise TextGenerationError("service unavailable")


FALLBACK_DECISION = BuildDecision(category=Category.RESIDENTIAL, reason="Housing needed", rule="zoning_mix")


@pytest.mark.parametrize("category", [category.value for category in Category])
def test_fallback_thought_exists_for_every_category(category: str) -> None:
    context = NarrativeContext(recent_categories=[category, category], total_structures=5)

    thought = fallback_thought(context)

    phrases = FALLBACK_PHRASES[category]
    assert thought == phrases[5 % len(phrases)]


def test_fallback_thought_uses_default_table_for_unknown_or_empty_history() -> None:
    unknown = NarrativeContext(recent_categories=["spaceport"], total_structures=1)
    empty = NarrativeContext(total_structures=0)

    assert fallback_thought(unknown) in FALLBACK_PHRASES["default"]
    assert fallback_thought(empty) == FALLBACK_PHRASES["default"][0]


def test_generate_thought_without_generator_is_deterministic() -> None:
    context = NarrativeContext.from_world(WorldState())
    advisor = NarrativeAdvisor()

    first = asyncio.run(advisor.generate_thought(context))
    second = asyncio.run(advisor.generate_thought(context))

    assert first == second
    assert not advisor.enabled


def test_generate_thought_times_out_to_fallback() -> None:
    context = NarrativeContext(recent_categories=["power"], total_structures=2)
    advisor = NarrativeAdvisor(SlowGenerator(), timeout_seconds=0.05)

    async def _run() -> tuple[str, float]:
        started = time.perf_counter()
        thought = await advisor.generate_thought(context)
        return thought, time.perf_counter() - started

    thought, elapsed = asyncio.run(_run())
    assert thought == fallback_thought(context)
    assert elapsed < 0.3


def test_generate_thought_failure_and_empty_output_fall_back() -> None:
    context = NarrativeContext(recent_categories=["water"], total_structures=3)

    failed = asyncio.run(NarrativeAdvisor(FailingGenerator()).generate_thought(context))
    blank = asyncio.run(NarrativeAdvisor(StaticGenerator("   ")).generate_thought(context))

    assert failed == fallback_thought(context)
    assert blank == fallback_thought(context)


def test_generate_thought_returns_generator_text() -> None:
    generator = StaticGenerator("  The grid hums tonight.  ")
    context = NarrativeContext.from_world(WorldState())

    thought = asyncio.run(NarrativeAdvisor(generator).generate_thought(context))

    assert thought == "The grid hums tonight."
    assert "Mood: steady" in generator.calls[0]


def test_advisory_parses_first_json_object() -> None:
    text = 'Sure! {"decision": "Commercial", "reason": "Jobs for new arrivals"} Hope that helps.'

    decision = parse_advisory(text)

    assert decision == BuildDecision(category=Category.COMMERCIAL, reason="Jobs for new arrivals", rule="advisory")


@pytest.mark.parametrize(
    "text",
    [
        "build more homes",
        '{"decision": "spaceport"}',
        '{"decision": "road", "reason": "connect"}',
        "{not json}",
        "[1, 2, 3]",
    ],
)
def test_advisory_rejects_invalid_responses(text: str) -> None:
    assert parse_advisory(text) is None


def test_advisory_falls_back_unchanged_on_failure() -> None:
    context = NarrativeContext()

    unparseable = asyncio.run(
        NarrativeAdvisor(StaticGenerator("no idea")).get_next_build_advisory(context, FALLBACK_DECISION)
    )
    slow = asyncio.run(
        NarrativeAdvisor(SlowGenerator(), timeout_seconds=0.05).get_next_build_advisory(context, FALLBACK_DECISION)
    )

    assert unparseable is FALLBACK_DECISION
    assert slow is FALLBACK_DECISION


def test_advisory_prompt_carries_colony_stats() -> None:
    generator = StaticGenerator(json.dumps({"decision": "park", "reason": "Shade"}))
    context = NarrativeContext.from_world(WorldState())

    decision = asyncio.run(NarrativeAdvisor(generator).get_next_build_advisory(context, FALLBACK_DECISION))

    assert decision.category is Category.PARK
    assert '"net_resources"' in generator.calls[0]


def test_openai_generator_wraps_transport_errors() -> None:
    generator = OpenAICompatibleGenerator(api_key="k", base_url="http://127.0.0.1:9", request_timeout_seconds=0.5)

    with pytest.raises(TextGenerationError):
        generator.complete("hello")
