"""Rule-based policy that picks the next category to build."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from city_builder.models import Category, Resource
from city_builder.world import WorldState


@dataclass(slots=True)
class BuildDecision:
    """The category to build next and why."""

    category: Category
    reason: str
    rule: str = "fallback"


@dataclass(slots=True)
class DecisionPolicy:
    """Static thresholds for the decision rules."""

    critical_power_threshold: float = 5.0
    # One infrastructure structure per N real structures, checked in order.
    infrastructure_ratios: tuple[tuple[Category, int], ...] = (
        (Category.POWER, 8),
        (Category.WATER, 10),
        (Category.FOOD, 12),
    )
    # Minimum share of real structures, checked in order.
    zoning_targets: tuple[tuple[Category, float], ...] = (
        (Category.RESIDENTIAL, 0.60),
        (Category.COMMERCIAL, 0.20),
        (Category.INDUSTRIAL, 0.15),
        (Category.PARK, 0.05),
    )
    reasons: dict[Category, str] = field(
        default_factory=lambda: {
            Category.POWER: "Need more power for buildings",
            Category.WATER: "Need water storage",
            Category.FOOD: "Need food production",
            Category.RESIDENTIAL: "Housing needed",
            Category.COMMERCIAL: "Jobs needed",
            Category.INDUSTRIAL: "Industry needed",
            Category.PARK: "Greenery for morale",
        }
    )

    @classmethod
    def from_settings(cls, settings: Any) -> DecisionPolicy:
        return cls(
            critical_power_threshold=settings.critical_power_threshold,
            infrastructure_ratios=(
                (Category.POWER, settings.power_ratio),
                (Category.WATER, settings.water_ratio),
                (Category.FOOD, settings.food_ratio),
            ),
            zoning_targets=(
                (Category.RESIDENTIAL, settings.residential_target),
                (Category.COMMERCIAL, settings.commercial_target),
                (Category.INDUSTRIAL, settings.industrial_target),
                (Category.PARK, settings.park_target),
            ),
        )


class BuildDecisionEngine:
    """Strict-priority policy: critical shortage, infrastructure ratios, zoning mix, fallback."""

    def __init__(self, policy: DecisionPolicy | None = None) -> None:
        self.policy = policy or DecisionPolicy()

    def decide(self, world: WorldState, advisory_hint: Category | str | None = None) -> BuildDecision:
        net_power = world.ledger.net(Resource.POWER)
        if net_power < self.policy.critical_power_threshold:
            return BuildDecision(
                category=Category.POWER,
                reason=f"Critical: power deficit (net {net_power:g}), need solar panels",
                rule="critical_shortage",
            )

        counts = world.category_counts()
        real = world.real_count()

        for category, ratio in self.policy.infrastructure_ratios:
            required = real // max(1, ratio) + 1
            if counts[category] < required:
                return BuildDecision(
                    category=category,
                    reason=f"{self.policy.reasons[category]} ({counts[category]}/{required})",
                    rule="infrastructure_ratio",
                )

        denominator = real or 1
        for category, target in self.policy.zoning_targets:
            if counts[category] / denominator < target:
                return BuildDecision(category=category, reason=self.policy.reasons[category], rule="zoning_mix")

        hint = _coerce_hint(advisory_hint)
        if hint is not None:
            return BuildDecision(category=hint, reason="Advisor suggestion", rule="advisory")
        return BuildDecision(category=Category.RESIDENTIAL, reason="Default expansion", rule="fallback")


def _coerce_hint(hint: Category | str | None) -> Category | None:
    if hint is None:
        return None
    try:
        category = Category(hint)
    except ValueError:
        return None
    if category is Category.ROAD:
        return None
    return category
