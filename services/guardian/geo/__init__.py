"""
Pure geo/kinematics helpers: haversine distance, deadline resolution and the
miss-probability curve that turns (speed, distance, time left) into a risk.
"""
