"""Build decision policy and placement strategies."""

from .engine import BuildDecision, BuildDecisionEngine, DecisionPolicy
from .placement import (
    NeighborhoodPlacementPlanner,
    PlacementConstraints,
    PlacementPlanner,
    RingPlacementPlanner,
    build_planner,
    is_placeable,
)

__all__ = [
    "BuildDecision",
    "BuildDecisionEngine",
    "DecisionPolicy",
    "NeighborhoodPlacementPlanner",
    "PlacementConstraints",
    "PlacementPlanner",
    "RingPlacementPlanner",
    "build_planner",
    "is_placeable",
]
