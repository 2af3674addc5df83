"""
Position source subscription abstraction and the queue-fed implementation.
"""

from services.guardian.positions.source import (
    PositionSource,
    PositionSubscription,
    QueuedPositionSource,
)

__all__ = ["PositionSource", "PositionSubscription", "QueuedPositionSource"]
