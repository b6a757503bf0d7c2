"""Grid occupancy tracking and nearest-free-cell search."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

from city_builder.models import Category, GridPoint, Structure

CellKey = tuple[int, int]


def cell_key(x: float, z: float) -> CellKey:
    return int(round(x)), int(round(z))


@dataclass(frozen=True, slots=True)
class ExclusionZone:
    """Square no-build area around a landmark (e.g. the landing site)."""

    center: GridPoint
    half_extent: int

    def contains(self, x: float, z: float) -> bool:
        return abs(x - self.center.x) < self.half_extent and abs(z - self.center.z) < self.half_extent


class SpatialIndex:
    """Tracks occupied cells, road cells and exclusion zones.

    Road cells are tracked independently of occupancy: a built road occupies
    its cell *and* is marked as road, while roads that are only planned are
    reserved in the road set before anything occupies them.
    """

    def __init__(self, exclusion_zones: Iterable[ExclusionZone] = ()) -> None:
        self._occupied: set[CellKey] = set()
        self._roads: set[CellKey] = set()
        self._exclusion_zones: tuple[ExclusionZone, ...] = tuple(exclusion_zones)

    @property
    def exclusion_zones(self) -> tuple[ExclusionZone, ...]:
        return self._exclusion_zones

    def is_occupied(self, x: float, z: float) -> bool:
        return cell_key(x, z) in self._occupied

    def occupy(self, x: float, z: float) -> None:
        self._occupied.add(cell_key(x, z))

    def release(self, x: float, z: float) -> None:
        self._occupied.discard(cell_key(x, z))

    def mark_road(self, x: float, z: float) -> None:
        self._roads.add(cell_key(x, z))

    def unmark_road(self, x: float, z: float) -> None:
        self._roads.discard(cell_key(x, z))

    def is_road(self, x: float, z: float) -> bool:
        return cell_key(x, z) in self._roads

    def is_excluded(self, x: float, z: float) -> bool:
        return any(zone.contains(x, z) for zone in self._exclusion_zones)

    def is_free(self, x: float, z: float) -> bool:
        return not self.is_occupied(x, z) and not self.is_road(x, z) and not self.is_excluded(x, z)

    def footprint_free(self, structure_cells: Iterable[CellKey], *, allow_road: bool = False) -> bool:
        for x, z in structure_cells:
            if self.is_occupied(x, z) or self.is_excluded(x, z):
                return False
            if not allow_road and self.is_road(x, z):
                return False
        return True

    def occupy_structure(self, structure: Structure) -> None:
        for x, z in structure.cells():
            self.occupy(x, z)
            if structure.category is Category.ROAD:
                self.mark_road(x, z)

    def release_structure(self, structure: Structure) -> None:
        for x, z in structure.cells():
            self.release(x, z)
            if structure.category is Category.ROAD:
                self.unmark_road(x, z)

    def find_nearest_free(
        self,
        origin_x: int,
        origin_z: int,
        max_radius: int,
        *,
        step: int = 1,
    ) -> GridPoint | None:
        """Return the first free cell in expanding square rings around the origin.

        Rings grow by ``step``. Inside a ring, ``dx`` ascends from ``-r`` to
        ``r`` and for each ``dx`` the ring's ``dz`` values ascend, so the
        result is fully determined by the occupancy snapshot.
        """
        step = max(1, int(step))
        radius = 0
        while radius <= max_radius:
            for dx, dz in ring_offsets(radius, step):
                x = origin_x + dx
                z = origin_z + dz
                if self.is_free(x, z):
                    return GridPoint(x, z)
            radius += step
        return None

    def rebuild_from(self, structures: Iterable[Structure]) -> None:
        """Recompute occupancy and built roads from a structure list."""
        self._occupied.clear()
        self._roads.clear()
        for structure in structures:
            self.occupy_structure(structure)

    def clear(self) -> None:
        self._occupied.clear()
        self._roads.clear()

    def occupied_cells(self) -> frozenset[CellKey]:
        return frozenset(self._occupied)

    def road_cells(self) -> frozenset[CellKey]:
        return frozenset(self._roads)


def ring_offsets(radius: int, step: int) -> Iterator[CellKey]:
    if radius == 0:
        yield 0, 0
        return
    for dx in range(-radius, radius + 1, step):
        if abs(dx) == radius:
            for dz in range(-radius, radius + 1, step):
                yield dx, dz
        else:
            yield dx, -radius
            yield dx, radius
