"""Aggregate production/consumption counters for colony resources."""

from __future__ import annotations

from typing import Iterable, Mapping

from city_builder.catalog import flow_for
from city_builder.models import Resource, Structure


class ResourceLedger:
    """Running produced/consumed totals contributed by placed structures."""

    def __init__(self, critical_thresholds: Mapping[Resource, float] | None = None) -> None:
        self._thresholds: dict[Resource, float] = {resource: 0.0 for resource in Resource}
        self._thresholds[Resource.POWER] = 5.0
        if critical_thresholds:
            self._thresholds.update(critical_thresholds)
        self._produced: dict[Resource, float] = {}
        self._consumed: dict[Resource, float] = {}
        self.population = 0
        self.clear()

    def clear(self) -> None:
        self._produced = {resource: 0.0 for resource in Resource}
        self._consumed = {resource: 0.0 for resource in Resource}
        self.population = 0

    def apply_structure(self, structure: Structure) -> None:
        self._apply(structure, sign=1)

    def remove_structure(self, structure: Structure) -> None:
        self._apply(structure, sign=-1)

    def _apply(self, structure: Structure, *, sign: int) -> None:
        flow = flow_for(structure.category, structure.model_key)
        for resource, amount in flow.produces.items():
            self._produced[resource] += sign * amount
        for resource, amount in flow.consumes.items():
            self._consumed[resource] += sign * amount
        self.population += sign * flow.population

    def rebuild_from(self, structures: Iterable[Structure]) -> None:
        self.clear()
        for structure in structures:
            self.apply_structure(structure)

    def produced(self, resource: Resource) -> float:
        return self._produced[resource]

    def consumed(self, resource: Resource) -> float:
        return self._consumed[resource]

    def net(self, resource: Resource) -> float:
        return self._produced[resource] - self._consumed[resource]

    def net_power(self) -> float:
        return self.net(Resource.POWER)

    def net_water(self) -> float:
        return self.net(Resource.WATER)

    def net_food(self) -> float:
        return self.net(Resource.FOOD)

    def threshold(self, resource: Resource) -> float:
        return self._thresholds[resource]

    def is_critical(self, resource: Resource) -> bool:
        return self.net(resource) < self._thresholds[resource]

    def nets(self) -> dict[str, float]:
        return {resource.value: self.net(resource) for resource in Resource}

    def totals(self) -> dict[str, dict[str, float] | int]:
        totals: dict[str, dict[str, float] | int] = {
            resource.value: {
                "produced": self._produced[resource],
                "consumed": self._consumed[resource],
                "net": self.net(resource),
            }
            for resource in Resource
        }
        totals["population"] = self.population
        return totals
