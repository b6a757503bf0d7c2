"""Placement strategies that turn a build decision into concrete queue items.

Two growth models share one contract:

* ``RingPlacementPlanner`` fills square blocks in concentric rings around the
  landing site and lays cross-shaped arteries along the two main axes only.
* ``NeighborhoodPlacementPlanner`` grows zone-typed clusters, spawning a new
  one when the active cluster is full and linking it with an L-shaped road.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from typing import Any, Iterator, Protocol

from city_builder.catalog import QUEUE_PRIORITY, RANDOM_ORIENTATION, pick_variant
from city_builder.models import Category, Footprint, GridPoint, Neighborhood, Priority, QueueItem
from city_builder.planning.engine import BuildDecision
from city_builder.world import WorldState
from city_builder.world.spatial import CellKey, ring_offsets

logger = logging.getLogger("city_builder.placement")

ZONE_CATEGORIES: frozenset[Category] = frozenset({Category.RESIDENTIAL, Category.COMMERCIAL, Category.INDUSTRIAL})


@dataclass(slots=True)
class PlacementConstraints:
    """Search bounds and spacing rules for one placement query."""

    search_radius: int = 12
    max_attempts: int = 30
    min_spacing: float = 0.0
    footprint: Footprint = field(default_factory=Footprint)
    reserved: set[CellKey] = field(default_factory=set)


def is_placeable(world: WorldState, item: QueueItem) -> bool:
    """Re-validate a queue item against the current occupancy snapshot."""
    cells = item.footprint.cells(item.position)
    return world.spatial.footprint_free(cells, allow_road=item.category is Category.ROAD)


class PlacementPlanner(Protocol):
    def find_valid_position(
        self,
        world: WorldState,
        anchor: GridPoint,
        constraints: PlacementConstraints | None = None,
    ) -> GridPoint | None:
        """Return a valid cell near ``anchor`` or ``None`` after the attempt budget."""

    def queue_category_build(
        self,
        category: Category,
        position: GridPoint,
        *,
        reason: str | None = None,
        priority: int | None = None,
        orientation: int | None = None,
    ) -> QueueItem:
        """Materialize a queue item for ``category`` at ``position``."""

    def plan_batch(self, world: WorldState, decision: BuildDecision) -> list[QueueItem]:
        """Produce the next batch of queue items for a decision."""

    def emergency_position(self, world: WorldState, search_radius: int) -> GridPoint | None:
        """Find a cell for an emergency power structure."""

    def reset(self) -> None:
        """Forget growth state (rings, neighborhoods)."""


class _GridPlanner:
    """Shared validation, item construction and emergency search."""

    def __init__(
        self,
        *,
        rng: random.Random | None = None,
        grid_size: int = 4,
        block_size: int = 24,
        max_attempts: int = 30,
    ) -> None:
        self._rng = rng or random.Random()
        self.grid_size = grid_size
        self.block_size = block_size
        self.max_attempts = max_attempts

    def is_valid_position(self, world: WorldState, point: GridPoint, constraints: PlacementConstraints) -> bool:
        cells = list(constraints.footprint.cells(point))
        if any(cell in constraints.reserved for cell in cells):
            return False
        if not world.spatial.footprint_free(cells):
            return False
        if constraints.min_spacing > 0:
            for structure in world.structures:
                if structure.category is Category.ROAD:
                    continue
                distance = math.hypot(structure.position.x - point.x, structure.position.z - point.z)
                if distance < constraints.min_spacing:
                    return False
        return True

    def find_valid_position(
        self,
        world: WorldState,
        anchor: GridPoint,
        constraints: PlacementConstraints | None = None,
    ) -> GridPoint | None:
        constraints = constraints or PlacementConstraints(max_attempts=self.max_attempts)
        for attempt, candidate in enumerate(self._candidates(anchor, constraints)):
            if attempt >= constraints.max_attempts:
                break
            if self.is_valid_position(world, candidate, constraints):
                return candidate
        logger.debug(
            "placement_failed",
            extra={"anchor": (anchor.x, anchor.z), "attempts": constraints.max_attempts},
        )
        return None

    def _candidates(self, anchor: GridPoint, constraints: PlacementConstraints) -> Iterator[GridPoint]:
        raise NotImplementedError

    def queue_category_build(
        self,
        category: Category,
        position: GridPoint,
        *,
        reason: str | None = None,
        priority: int | None = None,
        orientation: int | None = None,
    ) -> QueueItem:
        variant = pick_variant(category, self._rng)
        low, high = variant.scale_range
        if orientation is None:
            orientation = self._rng.randrange(4) * 90 if category in RANDOM_ORIENTATION else 0
        return QueueItem(
            category=category,
            model_key=variant.model_key,
            position=position,
            orientation=orientation,
            footprint=variant.footprint,
            priority=QUEUE_PRIORITY[category] if priority is None else priority,
            reason=reason,
            scale=round(self._rng.uniform(low, high), 2),
        )

    def emergency_position(self, world: WorldState, search_radius: int) -> GridPoint | None:
        constraints = PlacementConstraints()
        rings = max(1, search_radius // self.block_size)
        for ring in range(1, rings + 1):
            offset = ring * self.block_size
            for x, z in (
                (offset, offset),
                (-offset, offset),
                (offset, -offset),
                (-offset, -offset),
                (offset, 0),
                (-offset, 0),
                (0, offset),
                (0, -offset),
            ):
                point = GridPoint(x, z)
                if self.is_valid_position(world, point, constraints):
                    return point
        return world.spatial.find_nearest_free(0, 0, search_radius, step=self.grid_size)

    def _snap(self, value: float) -> int:
        return int(round(value / self.grid_size)) * self.grid_size

    def _road_item(self, world: WorldState, x: int, z: int, orientation: int) -> QueueItem | None:
        if world.spatial.is_excluded(x, z) or world.spatial.is_occupied(x, z) or world.spatial.is_road(x, z):
            return None
        world.spatial.mark_road(x, z)
        return self.queue_category_build(
            Category.ROAD,
            GridPoint(x, z),
            reason="Road network",
            priority=Priority.INFRASTRUCTURE,
            orientation=orientation,
        )


class RingPlacementPlanner(_GridPlanner):
    """Concentric block expansion with minimal cross-shaped arteries."""

    _QUADRANTS = ((1, 1), (-1, 1), (1, -1), (-1, -1))
    _INFRA_ROLL = (Category.POWER, Category.POWER, Category.WATER, Category.FOOD)

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.current_ring = 0

    def reset(self) -> None:
        self.current_ring = 0

    def _candidates(self, anchor: GridPoint, constraints: PlacementConstraints) -> Iterator[GridPoint]:
        radius = 0
        while radius <= constraints.search_radius:
            for dx, dz in ring_offsets(radius, self.grid_size):
                yield GridPoint(anchor.x + dx, anchor.z + dz)
            radius += self.grid_size

    def plan_batch(self, world: WorldState, decision: BuildDecision) -> list[QueueItem]:
        self.current_ring += 1
        offset = self.current_ring * self.block_size
        logger.info("ring_expansion", extra={"ring": self.current_ring, "priority_category": decision.category.value})

        planned: set[CellKey] = set()
        items = self._infrastructure_spots(world, offset, planned)
        half_block = self.block_size // 2
        span = 2 * self.grid_size
        for x_sign, z_sign in self._QUADRANTS:
            center_x = x_sign * (offset - half_block)
            center_z = z_sign * (offset - half_block)
            for dx in range(-span, span + 1, self.grid_size):
                for dz in range(-span, span + 1, self.grid_size):
                    point = GridPoint(center_x + dx, center_z + dz)
                    if (point.x, point.z) in planned or not world.spatial.is_free(point.x, point.z):
                        continue
                    planned.add((point.x, point.z))
                    category = self._roll_category(decision.category)
                    reason = decision.reason if category is decision.category else "Mixed-use block"
                    items.append(self.queue_category_build(category, point, reason=reason))

        items.extend(self._arteries(world, offset))
        return items

    def _roll_category(self, priority_category: Category) -> Category:
        roll = self._rng.random()
        if roll < 0.5:
            return priority_category
        if roll < 0.75:
            return Category.RESIDENTIAL
        if roll < 0.9:
            return Category.COMMERCIAL
        return Category.INDUSTRIAL if self._rng.random() > 0.5 else Category.PARK

    def _infrastructure_spots(self, world: WorldState, offset: int, planned: set[CellKey]) -> list[QueueItem]:
        inset = offset - self.grid_size
        items = []
        for x, z in ((inset, inset), (-inset, inset), (inset, -inset), (-inset, -inset)):
            if (x, z) in planned or not world.spatial.is_free(x, z):
                continue
            category = self._INFRA_ROLL[self._rng.randrange(len(self._INFRA_ROLL))]
            planned.add((x, z))
            items.append(self.queue_category_build(category, GridPoint(x, z), reason="Ring infrastructure"))
        return items

    def _arteries(self, world: WorldState, offset: int) -> list[QueueItem]:
        previous = (self.current_ring - 1) * self.block_size
        start = previous + self.grid_size if previous > 0 else 12
        items = []
        for distance in range(start, offset + 1, self.grid_size):
            for x, z, orientation in (
                (distance, 0, 90),
                (-distance, 0, 90),
                (0, distance, 0),
                (0, -distance, 0),
            ):
                item = self._road_item(world, x, z, orientation)
                if item is not None:
                    items.append(item)
        return items


class NeighborhoodPlacementPlanner(_GridPlanner):
    """Zone-typed clusters connected by L-shaped roads."""

    def __init__(
        self,
        *,
        capacity: int = 8,
        radius: int = 12,
        min_spacing: float = 4.0,
        spawn_distance: tuple[float, float] = (28.0, 40.0),
        batch_size: int = 4,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.capacity = capacity
        self.radius = radius
        self.min_spacing = min_spacing
        self.spawn_distance = spawn_distance
        self.batch_size = batch_size
        self.neighborhoods: list[Neighborhood] = []
        self._active: dict[Category, Neighborhood] = {}

    def reset(self) -> None:
        self.neighborhoods = []
        self._active = {}

    def _candidates(self, anchor: GridPoint, constraints: PlacementConstraints) -> Iterator[GridPoint]:
        while True:
            angle = self._rng.uniform(0, 2 * math.pi)
            distance = self._rng.uniform(0, constraints.search_radius)
            yield GridPoint(
                self._snap(anchor.x + math.cos(angle) * distance),
                self._snap(anchor.z + math.sin(angle) * distance),
            )

    def plan_batch(self, world: WorldState, decision: BuildDecision) -> list[QueueItem]:
        if decision.category in ZONE_CATEGORIES:
            return self._plan_zone(world, decision)
        return self._plan_support(world, decision)

    def _plan_zone(self, world: WorldState, decision: BuildDecision) -> list[QueueItem]:
        items: list[QueueItem] = []
        neighborhood = self._active.get(decision.category)
        if neighborhood is None or neighborhood.is_full:
            neighborhood, roads = self._spawn(world, decision.category)
            items.extend(roads)

        constraints = PlacementConstraints(
            search_radius=neighborhood.radius,
            max_attempts=self.max_attempts,
            min_spacing=self.min_spacing,
        )
        room = min(self.batch_size, neighborhood.capacity - neighborhood.current_count)
        for _ in range(room):
            position = self.find_valid_position(world, neighborhood.center, constraints)
            if position is None:
                break
            constraints.reserved.add((position.x, position.z))
            items.append(
                self.queue_category_build(
                    decision.category,
                    position,
                    reason=decision.reason,
                    orientation=neighborhood.orientation_bias,
                )
            )
            neighborhood.current_count += 1
        if room > 0 and not constraints.reserved:
            # No room left around this center; force a new cluster next time.
            neighborhood.current_count = neighborhood.capacity
        return items

    def _plan_support(self, world: WorldState, decision: BuildDecision) -> list[QueueItem]:
        anchor = self.neighborhoods[-1].center if self.neighborhoods else GridPoint(0, 0)
        radius = (self.neighborhoods[-1].radius if self.neighborhoods else self.radius) + 2 * self.grid_size
        constraints = PlacementConstraints(
            search_radius=radius,
            max_attempts=self.max_attempts,
            min_spacing=self.min_spacing,
        )
        position = self.find_valid_position(world, anchor, constraints)
        if position is None:
            position = world.spatial.find_nearest_free(anchor.x, anchor.z, radius * 3, step=self.grid_size)
        if position is None:
            return []
        return [self.queue_category_build(decision.category, position, reason=decision.reason)]

    def _spawn(self, world: WorldState, zone_type: Category) -> tuple[Neighborhood, list[QueueItem]]:
        previous = self.neighborhoods[-1].center if self.neighborhoods else GridPoint(0, 0)
        center = previous
        for _ in range(self.max_attempts):
            angle = self._spawn_angle(previous, zone_type)
            distance = self._rng.uniform(*self.spawn_distance)
            center = GridPoint(
                self._snap(previous.x + math.cos(angle) * distance),
                self._snap(previous.z + math.sin(angle) * distance),
            )
            if not world.spatial.is_excluded(center.x, center.z) and not self._overlaps(center):
                break

        neighborhood = Neighborhood(
            center=center,
            zone_type=zone_type,
            capacity=self.capacity,
            radius=self.radius,
            orientation_bias=self._rng.randrange(4) * 90,
        )
        self.neighborhoods.append(neighborhood)
        self._active[zone_type] = neighborhood
        logger.info(
            "neighborhood_created",
            extra={"zone_type": zone_type.value, "center": (center.x, center.z), "count": len(self.neighborhoods)},
        )
        return neighborhood, self.connect(world, previous, center)

    def _spawn_angle(self, previous: GridPoint, zone_type: Category) -> float:
        centroid = self.residential_centroid()
        if zone_type is not Category.INDUSTRIAL or centroid is None:
            return self._rng.uniform(0, 2 * math.pi)
        away_x = previous.x - centroid[0]
        away_z = previous.z - centroid[1]
        if math.hypot(away_x, away_z) < 1:
            # Previous cluster sits on the housing centroid: head back across the origin.
            away_x, away_z = -centroid[0], -centroid[1]
        if math.hypot(away_x, away_z) < 1:
            return self._rng.uniform(0, 2 * math.pi)
        return math.atan2(away_z, away_x) + self._rng.uniform(-math.pi / 4, math.pi / 4)

    def residential_centroid(self) -> tuple[float, float] | None:
        homes = [n.center for n in self.neighborhoods if n.zone_type is Category.RESIDENTIAL]
        if not homes:
            return None
        return sum(p.x for p in homes) / len(homes), sum(p.z for p in homes) / len(homes)

    def _overlaps(self, center: GridPoint) -> bool:
        return any(
            math.hypot(n.center.x - center.x, n.center.z - center.z) < n.radius for n in self.neighborhoods
        )

    def connect(self, world: WorldState, start: GridPoint, end: GridPoint) -> list[QueueItem]:
        """Lay an L-shaped road: along x first, then along z."""
        items = []
        x0, z0 = self._snap(start.x), self._snap(start.z)
        x1, z1 = self._snap(end.x), self._snap(end.z)
        x_step = self.grid_size if x1 >= x0 else -self.grid_size
        z_step = self.grid_size if z1 >= z0 else -self.grid_size
        for x in range(x0, x1 + x_step, x_step):
            item = self._road_item(world, x, z0, 90)
            if item is not None:
                items.append(item)
        for z in range(z0 + z_step, z1 + z_step, z_step):
            item = self._road_item(world, x1, z, 0)
            if item is not None:
                items.append(item)
        return items


def build_planner(settings: Any, rng: random.Random | None = None) -> PlacementPlanner:
    common = {
        "rng": rng,
        "grid_size": settings.grid_size,
        "block_size": settings.block_size,
        "max_attempts": settings.placement_attempts,
    }
    strategy = str(settings.placement_strategy).strip().lower()
    if strategy == "ring":
        return RingPlacementPlanner(**common)
    if strategy == "neighborhood":
        return NeighborhoodPlacementPlanner(
            capacity=settings.neighborhood_capacity,
            radius=settings.neighborhood_radius,
            min_spacing=settings.neighborhood_min_spacing,
            **common,
        )
    raise ValueError(f"Unknown placement strategy: {settings.placement_strategy!r}")
