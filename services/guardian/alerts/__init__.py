"""
Alert text — model-phrased (PhrasingService) with a pure-template fallback
(composer). The guardian always ends up with some text to show.
"""

from services.guardian.alerts.phrasing import PhrasingContext, PhrasingError, PhrasingService

__all__ = ["PhrasingContext", "PhrasingError", "PhrasingService"]
