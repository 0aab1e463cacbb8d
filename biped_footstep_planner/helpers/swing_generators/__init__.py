"""Swing foot trajectory generation and collision-aware expansion."""

from .two_waypoint_swing_generator import TwoWaypointSwingGenerator
from .swing_over_regions_trajectory_expander import (
    CollisionType,
    SwingOverRegionsTrajectoryExpander,
    SwingPlan,
    SwingStatus,
)

__all__ = [
    'TwoWaypointSwingGenerator',
    'SwingOverRegionsTrajectoryExpander',
    'SwingPlan',
    'SwingStatus',
    'CollisionType',
]
