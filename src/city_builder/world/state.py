"""Authoritative world model: placed structures, resources, occupancy and clock."""

from __future__ import annotations

import itertools
import logging
from collections import Counter
from dataclasses import dataclass, replace
from typing import Any, Iterable

from city_builder.catalog import seeded_metadata
from city_builder.models import REAL_CATEGORIES, Category, GridPoint, Resource, Structure
from city_builder.world.ledger import ResourceLedger
from city_builder.world.spatial import ExclusionZone, SpatialIndex

logger = logging.getLogger("city_builder.world")

HOURS_PER_DAY = 24.0
START_TIME_OF_DAY = 12.0
START_MORALE = 50

# Core infrastructure around the landing site, re-seeded on every reset.
BASELINE_LAYOUT: tuple[tuple[Category, str, GridPoint], ...] = (
    *(
        (Category.POWER, "solarpanel", GridPoint(x, z))
        for x in (8, 12)
        for z in (-4, 0, 4)
    ),
    (Category.WATER, "water_storage", GridPoint(0, 10)),
    (Category.FOOD, "space_farm_small", GridPoint(-10, 0)),
    (Category.ECO, "eco_module", GridPoint(0, -10)),
)


@dataclass(slots=True)
class HistoryEntry:
    category: Category
    model_key: str
    position: GridPoint
    day: int
    time_of_day: float


class WorldState:
    """Aggregate root owning structures, the ledger, the spatial index and the clock."""

    def __init__(
        self,
        *,
        critical_power_threshold: float = 5.0,
        exclusion_zones: Iterable[ExclusionZone] | None = None,
        seed_baseline: bool = True,
    ) -> None:
        if exclusion_zones is None:
            exclusion_zones = (ExclusionZone(center=GridPoint(0, 0), half_extent=6),)
        self.ledger = ResourceLedger({Resource.POWER: critical_power_threshold})
        self.spatial = SpatialIndex(exclusion_zones)
        self._seed_baseline = seed_baseline
        self.structures: list[Structure] = []
        self.history: list[HistoryEntry] = []
        self.day = 1
        self.time_of_day = START_TIME_OF_DAY
        self.morale = START_MORALE
        self._ids = itertools.count(1)
        self.reset()

    @classmethod
    def from_settings(cls, settings: Any) -> WorldState:
        return cls(
            critical_power_threshold=settings.critical_power_threshold,
            exclusion_zones=(ExclusionZone(GridPoint(0, 0), settings.landing_zone_half_extent),),
        )

    def reset(self) -> None:
        """Return to the deterministic baseline: same seed structures, same counters."""
        self.structures = []
        self.history = []
        self.day = 1
        self.time_of_day = START_TIME_OF_DAY
        self.morale = START_MORALE
        self._ids = itertools.count(1)
        self.ledger.clear()
        self.spatial.clear()
        if self._seed_baseline:
            for category, model_key, position in BASELINE_LAYOUT:
                self.add_structure(
                    Structure(
                        id="",
                        category=category,
                        model_key=model_key,
                        position=position,
                        metadata=seeded_metadata(category),
                    )
                )
        logger.info("world_reset", extra={"structures": len(self.structures)})

    def next_structure_id(self) -> str:
        return f"s-{next(self._ids)}"

    def add_structure(self, structure: Structure) -> Structure:
        if not structure.id:
            structure = replace(structure, id=self.next_structure_id())
        self.structures.append(structure)
        self.spatial.occupy_structure(structure)
        self.ledger.apply_structure(structure)
        self.history.append(
            HistoryEntry(
                category=structure.category,
                model_key=structure.model_key,
                position=structure.position,
                day=self.day,
                time_of_day=self.time_of_day,
            )
        )
        return structure

    def remove_structure(self, structure_id: str) -> Structure | None:
        """Administrative correction; not used by the build loop."""
        for index, structure in enumerate(self.structures):
            if structure.id == structure_id:
                del self.structures[index]
                self.spatial.release_structure(structure)
                self.ledger.remove_structure(structure)
                return structure
        return None

    def sync_structures(self, structures: Iterable[Structure]) -> None:
        """Replace the structure list after a bulk external sync."""
        self.structures = list(structures)
        self.spatial.rebuild_from(self.structures)
        self.ledger.rebuild_from(self.structures)
        self.history = [
            HistoryEntry(
                category=structure.category,
                model_key=structure.model_key,
                position=structure.position,
                day=structure.metadata.built_on_day if structure.metadata else self.day,
                time_of_day=self.time_of_day,
            )
            for structure in self.structures
        ]
        # Generated ids must stay clear of every synced "s-<n>" id.
        highest = max((_id_number(s.id) for s in self.structures), default=0)
        self._ids = itertools.count(highest + 1)

    def get(self, structure_id: str) -> Structure | None:
        return next((s for s in self.structures if s.id == structure_id), None)

    def category_counts(self) -> Counter[Category]:
        counts: Counter[Category] = Counter({category: 0 for category in Category})
        counts.update(structure.category for structure in self.structures)
        return counts

    def real_count(self) -> int:
        counts = self.category_counts()
        return sum(counts[category] for category in REAL_CATEGORIES)

    def recent_structures(self, limit: int = 5) -> list[Structure]:
        return self.structures[-limit:] if limit > 0 else []

    def advance_time(self, hours: float) -> bool:
        """Move the clock forward; return True when a new day started."""
        total = self.time_of_day + hours
        days_passed = int(total // HOURS_PER_DAY)
        self.time_of_day = total % HOURS_PER_DAY
        for _ in range(days_passed):
            self.day += 1
            self.calculate_daily_stats()
            logger.info("day_started", extra={"day": self.day})
        return days_passed > 0

    def calculate_daily_stats(self) -> dict[str, float]:
        nets = self.ledger.nets()
        if all(value >= 0 for value in nets.values()):
            self.morale = min(100, self.morale + 5)
        else:
            self.morale = max(0, self.morale - 10)
        return nets

    @property
    def mood(self) -> str:
        if self.morale >= 70:
            return "optimistic"
        if self.morale >= 40:
            return "steady"
        return "worried"

    def summary(self) -> dict[str, Any]:
        """Compact view of the colony for prompts and logs."""
        counts = self.category_counts()
        return {
            "day": self.day,
            "time_of_day": round(self.time_of_day, 2),
            "total_structures": len(self.structures),
            "real_structures": self.real_count(),
            "counts": {category.value: counts[category] for category in Category},
            "net_resources": self.ledger.nets(),
            "population": self.ledger.population,
            "morale": self.morale,
            "recent_builds": [structure.model_key for structure in self.recent_structures()],
        }

    def snapshot(self) -> dict[str, Any]:
        """Resync payload; occupancy and queue are rebuilt from ``structures``."""
        return {
            "structures": [structure.as_dict() for structure in self.structures],
            "day": self.day,
            "time_of_day": self.time_of_day,
            "resource_totals": self.ledger.totals(),
            "total_structure_count": len(self.structures),
            "morale": self.morale,
        }


def _id_number(structure_id: str) -> int:
    prefix, _, number = structure_id.partition("-")
    if prefix == "s" and number.isdigit():
        return int(number)
    return 0
