from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterator
from uuid import uuid4


class Category(str, Enum):
    """Functional class of a structure."""

    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"
    INDUSTRIAL = "industrial"
    POWER = "power"
    WATER = "water"
    FOOD = "food"
    ECO = "eco"
    PARK = "park"
    ROAD = "road"


class Resource(str, Enum):
    POWER = "power"
    WATER = "water"
    FOOD = "food"


REAL_CATEGORIES: tuple[Category, ...] = (
    Category.RESIDENTIAL,
    Category.COMMERCIAL,
    Category.INDUSTRIAL,
    Category.PARK,
)
INFRASTRUCTURE_CATEGORIES: tuple[Category, ...] = (
    Category.POWER,
    Category.WATER,
    Category.FOOD,
    Category.ECO,
)


class Priority:
    """Queue priority bands; lower values are built sooner."""

    EMERGENCY = 0
    INFRASTRUCTURE = 10
    BUILDING = 20


@dataclass(frozen=True, slots=True)
class GridPoint:
    x: int
    z: int

    @classmethod
    def of(cls, x: float, z: float) -> GridPoint:
        return cls(x=int(round(x)), z=int(round(z)))

    def as_list(self) -> list[int]:
        """Ground-level ``[x, y, z]`` triple used by observers."""
        return [self.x, 0, self.z]


@dataclass(frozen=True, slots=True)
class Footprint:
    width: int = 1
    depth: int = 1

    def cells(self, origin: GridPoint) -> Iterator[tuple[int, int]]:
        for dx in range(self.width):
            for dz in range(self.depth):
                yield origin.x + dx, origin.z + dz


@dataclass(frozen=True, slots=True)
class StructureMetadata:
    """Descriptive attributes generated once when a structure is placed."""

    name: str
    purpose: str
    population: int
    capacity: str
    category: Category
    built_on_day: int
    built_at: datetime | None = None

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "purpose": self.purpose,
            "population": self.population,
            "capacity": self.capacity,
            "category": self.category.value,
            "built_on_day": self.built_on_day,
            "built_at": self.built_at.isoformat() if self.built_at else None,
        }


@dataclass(frozen=True, slots=True)
class Structure:
    """A placed structure owned by the world state."""

    id: str
    category: Category
    model_key: str
    position: GridPoint
    orientation: int = 0
    footprint: Footprint = field(default_factory=Footprint)
    metadata: StructureMetadata | None = None
    scale: float = 2.0

    def cells(self) -> Iterator[tuple[int, int]]:
        return self.footprint.cells(self.position)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category.value,
            "model_key": self.model_key,
            "position": self.position.as_list(),
            "orientation": self.orientation,
            "footprint": [self.footprint.width, self.footprint.depth],
            "scale": self.scale,
            "metadata": self.metadata.as_dict() if self.metadata else None,
        }


@dataclass(slots=True)
class QueueItem:
    """An unmaterialized build intent waiting in the construction queue."""

    category: Category
    model_key: str
    position: GridPoint
    orientation: int = 0
    footprint: Footprint = field(default_factory=Footprint)
    priority: int = Priority.BUILDING
    reason: str | None = None
    scale: float = 2.0
    ticket_id: str = field(default_factory=lambda: uuid4().hex)


@dataclass(slots=True)
class Neighborhood:
    """A zone-typed cluster used by the neighborhood growth strategy."""

    center: GridPoint
    zone_type: Category
    capacity: int
    radius: int
    orientation_bias: int = 0
    current_count: int = 0

    @property
    def is_full(self) -> bool:
        return self.current_count >= self.capacity
