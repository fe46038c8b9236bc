"""
Roster lookups and trip rollups.
"""

from .roster import Roster, classify_vehicle_type
from .service import aggregate_by_day, aggregate_by_entity, calculate_totals

__all__ = [
    "Roster",
    "aggregate_by_day",
    "aggregate_by_entity",
    "calculate_totals",
    "classify_vehicle_type",
]
