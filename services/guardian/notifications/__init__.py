"""
Notification delivery — rate-limited push for guardian alerts.
"""

from services.guardian.notifications.push import PushNotifier

__all__ = ["PushNotifier"]
