"""Static per-category tables: visual variants, names, purposes and resource flows.

Every table is keyed by every :class:`Category`; ``_check_exhaustive`` runs at
import time so a new category cannot ship with a missing entry.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime

from .models import Category, Footprint, Priority, Resource, StructureMetadata


@dataclass(frozen=True, slots=True)
class ModelVariant:
    model_key: str
    scale_range: tuple[float, float] = (2.0, 2.0)
    footprint: Footprint = Footprint()


@dataclass(frozen=True, slots=True)
class ResourceFlow:
    """Production and consumption contributed by one structure."""

    produces: dict[Resource, float]
    consumes: dict[Resource, float]
    population: int = 0


MODEL_VARIANTS: dict[Category, tuple[ModelVariant, ...]] = {
    Category.RESIDENTIAL: tuple(
        ModelVariant(key, scale_range=(1.3, 1.7)) for key in ("building_A", "building_B", "building_C", "building_D")
    ),
    Category.COMMERCIAL: tuple(ModelVariant(key, scale_range=(1.4, 1.7)) for key in ("building_E", "building_F")),
    Category.INDUSTRIAL: tuple(ModelVariant(key, scale_range=(1.5, 1.8)) for key in ("building_G", "building_H")),
    Category.POWER: (ModelVariant("solarpanel"),),
    Category.WATER: (ModelVariant("water_storage"),),
    Category.FOOD: (ModelVariant("space_farm_small"), ModelVariant("space_farm_large")),
    Category.ECO: (ModelVariant("eco_module"),),
    Category.PARK: tuple(ModelVariant(key, scale_range=(1.5, 1.5)) for key in ("tree_A", "tree_B", "tree_C")),
    Category.ROAD: (ModelVariant("road_straight"),),
}

BUILDING_NAMES: dict[Category, tuple[str, ...]] = {
    Category.RESIDENTIAL: (
        "Sunrise Apartments",
        "Horizon Heights",
        "Nova Living",
        "Stellar Residence",
        "Cosmic Condos",
        "Unity Housing",
        "Pioneer Homes",
        "Settlement Quarters",
        "Colony Dwellings",
        "New Earth Flats",
    ),
    Category.COMMERCIAL: (
        "Trading Post Alpha",
        "Market Hub",
        "Commerce Center",
        "Supply Depot",
        "Merchant Plaza",
        "Exchange Station",
    ),
    Category.INDUSTRIAL: (
        "Fabrication Plant",
        "Processing Facility",
        "Manufacturing Hub",
        "Assembly Works",
        "Production Center",
    ),
    Category.POWER: ("Solar Array", "Power Station", "Energy Grid Node", "Photovoltaic Farm"),
    Category.WATER: ("Water Reservoir", "Purification Station", "Aqua Storage", "Hydro Tank"),
    Category.FOOD: ("Hydroponic Farm", "Bio-Agriculture Unit", "Food Production", "Greenhouse Module"),
    Category.ECO: ("Life Support Module", "Oxygen Generator", "Atmosphere Processor", "Eco Recycler"),
    Category.PARK: ("Green Commons", "Pioneer Park", "Starlight Gardens", "Quiet Grove"),
    Category.ROAD: ("Colony Road",),
}

PURPOSES: dict[Category, str] = {
    Category.RESIDENTIAL: "Housing for colonists and their families",
    Category.COMMERCIAL: "Trade and commerce activities",
    Category.INDUSTRIAL: "Manufacturing and resource processing",
    Category.POWER: "Generating electricity for the colony",
    Category.WATER: "Storing and purifying water supply",
    Category.FOOD: "Growing food for colony sustenance",
    Category.ECO: "Maintaining breathable atmosphere",
    Category.PARK: "Recreation and oxygen production",
    Category.ROAD: "Transportation infrastructure",
}

QUEUE_PRIORITY: dict[Category, int] = {
    Category.RESIDENTIAL: Priority.BUILDING,
    Category.COMMERCIAL: Priority.BUILDING,
    Category.INDUSTRIAL: Priority.BUILDING,
    Category.POWER: Priority.INFRASTRUCTURE,
    Category.WATER: Priority.INFRASTRUCTURE,
    Category.FOOD: Priority.INFRASTRUCTURE,
    Category.ECO: Priority.INFRASTRUCTURE,
    Category.PARK: Priority.BUILDING,
    Category.ROAD: Priority.INFRASTRUCTURE,
}

# Quarter-turn orientation is only randomized for buildings that face a street.
RANDOM_ORIENTATION: frozenset[Category] = frozenset(
    {Category.RESIDENTIAL, Category.COMMERCIAL, Category.INDUSTRIAL, Category.PARK}
)

_NO_FLOW = ResourceFlow(produces={}, consumes={})

CATEGORY_FLOWS: dict[Category, ResourceFlow] = {
    Category.RESIDENTIAL: ResourceFlow(
        produces={},
        consumes={Resource.POWER: 3, Resource.WATER: 4, Resource.FOOD: 3},
        population=50,
    ),
    Category.COMMERCIAL: ResourceFlow(produces={}, consumes={Resource.POWER: 5, Resource.WATER: 2}),
    Category.INDUSTRIAL: ResourceFlow(produces={}, consumes={Resource.POWER: 8, Resource.WATER: 3}),
    Category.POWER: ResourceFlow(produces={Resource.POWER: 10}, consumes={}),
    Category.WATER: ResourceFlow(produces={Resource.WATER: 50}, consumes={}),
    Category.FOOD: ResourceFlow(produces={Resource.FOOD: 20}, consumes={}),
    Category.ECO: ResourceFlow(produces={Resource.FOOD: 10, Resource.WATER: 5}, consumes={}),
    Category.PARK: _NO_FLOW,
    Category.ROAD: _NO_FLOW,
}

MODEL_FLOWS: dict[str, ResourceFlow] = {
    "space_farm_large": ResourceFlow(produces={Resource.FOOD: 30}, consumes={}),
}


def _check_exhaustive() -> None:
    for name, table in (
        ("MODEL_VARIANTS", MODEL_VARIANTS),
        ("BUILDING_NAMES", BUILDING_NAMES),
        ("PURPOSES", PURPOSES),
        ("QUEUE_PRIORITY", QUEUE_PRIORITY),
        ("CATEGORY_FLOWS", CATEGORY_FLOWS),
    ):
        missing = set(Category) - set(table)
        if missing:
            raise RuntimeError(f"{name} is missing categories: {sorted(c.value for c in missing)}")


_check_exhaustive()


def flow_for(category: Category, model_key: str) -> ResourceFlow:
    return MODEL_FLOWS.get(model_key) or CATEGORY_FLOWS[category]


def pick_variant(category: Category, rng: random.Random) -> ModelVariant:
    variants = MODEL_VARIANTS[category]
    return variants[rng.randrange(len(variants))]


def describe(
    category: Category,
    rng: random.Random,
    *,
    day: int,
    built_at: datetime | None,
) -> StructureMetadata:
    """Generate display metadata for a structure that has just been placed."""
    names = BUILDING_NAMES[category]
    name = names[rng.randrange(len(names))]
    population, capacity = _capacity(category, rng)
    return StructureMetadata(
        name=name,
        purpose=PURPOSES[category],
        population=population,
        capacity=capacity,
        category=category,
        built_on_day=day,
        built_at=built_at,
    )


def seeded_metadata(category: Category, *, day: int = 1) -> StructureMetadata:
    """Deterministic metadata for baseline structures seeded on reset."""
    return StructureMetadata(
        name=BUILDING_NAMES[category][0],
        purpose=PURPOSES[category],
        population=0,
        capacity="core infrastructure",
        category=category,
        built_on_day=day,
        built_at=None,
    )


def _capacity(category: Category, rng: random.Random) -> tuple[int, str]:
    if category is Category.RESIDENTIAL:
        residents = rng.randint(50, 199)
        return residents, f"{residents} residents"
    if category is Category.COMMERCIAL:
        workers = rng.randint(10, 39)
        return workers, f"{workers} workers, serves ~{workers * 10} customers/day"
    if category is Category.INDUSTRIAL:
        workers = rng.randint(20, 69)
        return workers, f"{workers} workers"
    if category is Category.POWER:
        return 0, f"{rng.randint(200, 699)} kW output"
    if category is Category.WATER:
        return 0, f"{rng.randint(10_000, 59_999):,} liters storage"
    if category is Category.FOOD:
        tons = rng.randint(2, 11)
        farmers = rng.randint(5, 19)
        return farmers, f"{tons} tons/month, {farmers} farmers"
    if category is Category.ECO:
        return 0, f"Supports {rng.randint(100, 299)} colonists"
    if category is Category.PARK:
        return 0, "Open to all colonists"
    return 0, "Connects the colony"
