"""Kinematics tests: distance, deadline resolution, miss probability, ticks."""
