"""World model: structures, resources, occupancy and clock."""

from .ledger import ResourceLedger
from .spatial import ExclusionZone, SpatialIndex
from .state import BASELINE_LAYOUT, WorldState

__all__ = ["BASELINE_LAYOUT", "ExclusionZone", "ResourceLedger", "SpatialIndex", "WorldState"]
