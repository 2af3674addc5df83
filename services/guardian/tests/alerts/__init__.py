"""Alert text tests: template composer and the haiku phrasing client."""
