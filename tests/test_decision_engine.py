from __future__ import annotations

from city_builder.config import Settings
from city_builder.models import Category, GridPoint, Structure
from city_builder.planning import BuildDecisionEngine, DecisionPolicy
from city_builder.world import WorldState


def _add(world: WorldState, category: Category, count: int = 1, *, start_x: int = 20, z: int = 40) -> None:
    for index in range(count):
        world.add_structure(
            Structure(id="", category=category, model_key="m", position=GridPoint(start_x + index * 4, z))
        )


def _empty_world() -> WorldState:
    return WorldState(seed_baseline=False, exclusion_zones=())


def test_fresh_world_decides_residential() -> None:
    decision = BuildDecisionEngine().decide(WorldState())

    assert decision.category is Category.RESIDENTIAL
    assert decision.rule == "zoning_mix"


def test_low_net_power_overrides_everything() -> None:
    world = _empty_world()
    _add(world, Category.POWER)
    _add(world, Category.INDUSTRIAL, z=44)
    assert world.ledger.net_power() == 2

    decision = BuildDecisionEngine().decide(world)

    assert decision.category is Category.POWER
    assert decision.rule == "critical_shortage"
    assert "deficit" in decision.reason


def test_critical_power_ignores_advisory_hint() -> None:
    world = _empty_world()

    decision = BuildDecisionEngine().decide(world, advisory_hint="park")

    assert decision.category is Category.POWER


def test_critical_power_beats_infrastructure_ratio_and_zoning() -> None:
    world = WorldState()
    # Ten homes drain 30 power from the 60 baseline; two factories take 16 more.
    _add(world, Category.RESIDENTIAL, 10)
    _add(world, Category.INDUSTRIAL, 2, z=44)
    _add(world, Category.COMMERCIAL, 2, z=48)
    assert world.ledger.net_power() == 4

    assert BuildDecisionEngine().decide(world).category is Category.POWER


def test_power_exactly_at_threshold_is_not_critical() -> None:
    world = _empty_world()
    _add(world, Category.POWER)
    _add(world, Category.COMMERCIAL, z=44)
    _add(world, Category.WATER, z=48)
    _add(world, Category.FOOD, z=52)
    assert world.ledger.net_power() == 5

    decision = BuildDecisionEngine().decide(world)

    assert decision.rule != "critical_shortage"


def test_infrastructure_ratio_checked_power_then_water_then_food() -> None:
    world = _empty_world()
    _add(world, Category.POWER, 3, z=60)
    _add(world, Category.RESIDENTIAL, 8)

    decision = BuildDecisionEngine().decide(world)
    # 8 real structures need 2 power (have 3) and 1 water (have 0).
    assert decision.category is Category.WATER
    assert decision.rule == "infrastructure_ratio"

    _add(world, Category.WATER, z=64)
    assert BuildDecisionEngine().decide(world).category is Category.FOOD


def test_zoning_targets_are_checked_in_order() -> None:
    world = WorldState()
    _add(world, Category.RESIDENTIAL, 6)
    _add(world, Category.PARK, 1, z=44)

    decision = BuildDecisionEngine().decide(world)

    assert decision.category is Category.COMMERCIAL
    assert decision.rule == "zoning_mix"


def _balanced_world() -> WorldState:
    world = _empty_world()
    _add(world, Category.POWER, 9, z=60)
    _add(world, Category.WATER, 3, z=64)
    _add(world, Category.FOOD, 2, z=68)
    _add(world, Category.RESIDENTIAL, 12)
    _add(world, Category.COMMERCIAL, 4, z=44)
    _add(world, Category.INDUSTRIAL, 3, z=48)
    _add(world, Category.PARK, 1, z=52)
    return world


def test_advisory_hint_used_only_after_rules_are_satisfied() -> None:
    engine = BuildDecisionEngine()
    world = _balanced_world()

    assert engine.decide(world, advisory_hint="park").category is Category.PARK
    assert engine.decide(world, advisory_hint="park").rule == "advisory"
    assert engine.decide(world, advisory_hint="road").rule == "fallback"
    assert engine.decide(world, advisory_hint="spaceport").category is Category.RESIDENTIAL

    residential = next(s for s in world.structures if s.category is Category.RESIDENTIAL)
    world.remove_structure(residential.id)
    # 11 of 19 is below the residential target.
    assert engine.decide(world, advisory_hint="park").category is Category.RESIDENTIAL


def test_policy_from_settings_uses_configured_ratios() -> None:
    policy = DecisionPolicy.from_settings(Settings(power_ratio=2, critical_power_threshold=1))

    assert dict(policy.infrastructure_ratios)[Category.POWER] == 2
    assert policy.critical_power_threshold == 1
