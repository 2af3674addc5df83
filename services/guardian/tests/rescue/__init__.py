"""Rescue planner tests: pickup geometry, mode bands, saving estimate."""
