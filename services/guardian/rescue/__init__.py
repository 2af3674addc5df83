"""
Rescue planning — pickup heuristic, walking route, time-saving estimate and
last-mile mode recommendation for a connection that is at risk.
"""

from services.guardian.rescue.planner import RescuePlanner, derive_pickup, select_rescue_mode

__all__ = ["RescuePlanner", "derive_pickup", "select_rescue_mode"]
