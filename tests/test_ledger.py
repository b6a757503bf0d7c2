from __future__ import annotations

from city_builder.models import Category, GridPoint, Resource, Structure
from city_builder.world import ResourceLedger


def _structure(category: Category, model_key: str = "m", x: int = 0) -> Structure:
    return Structure(id=f"{category.value}-{x}", category=category, model_key=model_key, position=GridPoint(x, 0))


def test_residential_consumes_and_adds_population() -> None:
    ledger = ResourceLedger()
    ledger.apply_structure(_structure(Category.RESIDENTIAL))

    assert ledger.net(Resource.POWER) == -3
    assert ledger.net(Resource.WATER) == -4
    assert ledger.net(Resource.FOOD) == -3
    assert ledger.population == 50


def test_model_specific_flow_overrides_category_flow() -> None:
    ledger = ResourceLedger()
    ledger.apply_structure(_structure(Category.FOOD, "space_farm_small"))
    ledger.apply_structure(_structure(Category.FOOD, "space_farm_large", x=4))

    assert ledger.produced(Resource.FOOD) == 50


def test_power_is_critical_below_threshold() -> None:
    ledger = ResourceLedger({Resource.POWER: 5})
    assert ledger.is_critical(Resource.POWER)

    ledger.apply_structure(_structure(Category.POWER))
    assert not ledger.is_critical(Resource.POWER)

    ledger.apply_structure(_structure(Category.INDUSTRIAL, x=4))
    assert ledger.net_power() == 2
    assert ledger.is_critical(Resource.POWER)


def test_incremental_totals_match_rebuild_after_removal() -> None:
    structures = [
        _structure(Category.POWER),
        _structure(Category.RESIDENTIAL, x=4),
        _structure(Category.COMMERCIAL, x=8),
        _structure(Category.ECO, x=12),
    ]
    incremental = ResourceLedger()
    for structure in structures:
        incremental.apply_structure(structure)
    incremental.remove_structure(structures[1])

    rebuilt = ResourceLedger()
    rebuilt.rebuild_from([s for s in structures if s is not structures[1]])

    assert incremental.totals() == rebuilt.totals()
    assert incremental.nets() == {"power": 5, "water": 3, "food": 10}
