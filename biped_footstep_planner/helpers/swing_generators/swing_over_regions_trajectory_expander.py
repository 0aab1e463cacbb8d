"""Swing-over-planar-regions trajectory expander.

Starting from two waypoints lifted above the straight step, the expander
repeatedly looks for the first point where a collision sphere around the
swing foot comes closer to a terrain region than the allowed clearance, and
nudges the waypoints away from it. Contacts with the ground the foot lifts
off from are not collisions.

Two passes share one retry budget:
1. Optional fast pass on the straight polyline start -> waypoints -> end.
2. Refined pass sampling the actual two-waypoint spline at checkpoints. It
   always runs, so a polyline that gave up can still yield a clear swing.
"""

import enum
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple
import numpy as np

from biped_footstep_planner.helpers.geometry_utils import (
    is_on_or_above_plane,
    rotate_vector_about_axis,
    signed_distance_to_plane,
)
from biped_footstep_planner.helpers.planar_regions import TerrainModel, TerrainRegion
from biped_footstep_planner.parameters import SwingPlannerParameters
from .two_waypoint_swing_generator import TwoWaypointSwingGenerator

logger = logging.getLogger(__name__)

COINCIDENT_ENDPOINT_TOLERANCE = 1e-8
COINCIDENT_ENDPOINT_NUDGE = 1e-4


class SwingStatus(enum.Enum):
    SEARCHING = enum.auto()
    SOLUTION_FOUND = enum.auto()
    ADJUSTMENT_LIMIT_EXCEEDED = enum.auto()


class CollisionType(enum.Enum):
    NO_INTERSECTION = enum.auto()
    INTERSECTION_BUT_BELOW_IGNORE_PLANE = enum.auto()
    INTERSECTION_BUT_OUTSIDE_TRAJECTORY = enum.auto()
    CRITICAL_INTERSECTION = enum.auto()


@dataclass(frozen=True, eq=False)
class SwingPlan:
    """Swing waypoints for one step.

    Attributes:
        status: SOLUTION_FOUND or ADJUSTMENT_LIMIT_EXCEEDED.
        waypoints: (2, 3) final waypoints in world frame.
        max_swing_speed: Largest foot speed of the spline (swing duration 1 s).
        were_waypoints_adjusted: True if any adjustment was applied.
        number_of_tries: Adjustments performed.
    """
    status: SwingStatus
    waypoints: np.ndarray
    max_swing_speed: float
    were_waypoints_adjusted: bool
    number_of_tries: int

    @property
    def is_solution(self) -> bool:
        return self.status is SwingStatus.SOLUTION_FOUND


class _SwingGeometry:
    """Planes and reference points fixed for one expansion."""

    def __init__(self, start, end, first_waypoint, waypoint_midpoint, parameters, stance_position):
        self.start = start
        self.end = end
        radius = parameters.collision_sphere_radius

        self.mid_ground_point = waypoint_midpoint - np.array([0.0, 0.0, parameters.minimum_swing_height])
        self.plane_normal = _adjustment_plane_normal(start, first_waypoint, end, stance_position)

        step = end - start
        step_direction = step / np.linalg.norm(step)
        floor_normal = rotate_vector_about_axis(start - end, self.plane_normal, 0.5 * np.pi)
        self.floor_normal = floor_normal / np.linalg.norm(floor_normal)
        self.toe_origin = start + radius * step_direction
        self.toe_normal = step_direction
        self.heel_origin = end - radius * step_direction
        self.heel_normal = -step_direction


def _adjustment_plane_normal(start, first_waypoint, end, stance_position) -> np.ndarray:
    step = end - start
    normal = np.cross(first_waypoint - start, step)
    if np.linalg.norm(normal) < 1e-9:
        # Waypoint on the step line: plane through the step and world up, else
        # through the stance foot, else through a world axis
        helpers = [np.array([0.0, 0.0, 1.0])]
        if stance_position is not None:
            helpers.append(stance_position - start)
        helpers += [np.array([1.0, 0.0, 0.0]), np.array([0.0, 1.0, 0.0])]
        for helper in helpers:
            normal = np.cross(helper, step)
            if np.linalg.norm(normal) >= 1e-9:
                break
    return normal / np.linalg.norm(normal)


class SwingOverRegionsTrajectoryExpander:
    """Adjusts two swing waypoints until the swing clears all terrain regions."""

    def __init__(self, parameters: Optional[SwingPlannerParameters] = None):
        """
        Args:
            parameters: Swing settings; defaults from ``config.swing_params``.
        """
        self.parameters = parameters or SwingPlannerParameters.from_config()
        self.swing_generator = TwoWaypointSwingGenerator(
            touchdown_velocity=self.parameters.touchdown_velocity,
            swing_duration=1.0,
        )
        self.collision_log: List[Tuple[float, CollisionType]] = []

    @property
    def avoidance_distance(self) -> float:
        return self.parameters.collision_sphere_radius + self.parameters.minimum_swing_foot_clearance

    @property
    def minimum_floor_distance(self) -> float:
        return self.parameters.minimum_height_above_floor_for_collision + self.parameters.minimum_swing_foot_clearance

    def checkpoint_fractions(self) -> np.ndarray:
        """Swing fractions sampled by the refined collision pass."""
        p = self.parameters
        step = 1.0 / p.number_of_checkpoints
        count = int(np.floor((p.max_fraction_of_swing_for_collision_check
                              - p.min_fraction_of_swing_for_collision_check) / step + 1e-9))
        return p.min_fraction_of_swing_for_collision_check + step * np.arange(count + 1)

    def initial_waypoints(self, start: np.ndarray, end: np.ndarray) -> np.ndarray:
        """(2, 3) waypoints along the step, lifted above the higher foot."""
        p = self.parameters
        height = max(start[2], end[2]) + p.minimum_swing_height
        waypoints = np.zeros((2, 3))
        for i, proportion in enumerate(p.swing_waypoint_proportions):
            waypoints[i] = start + proportion * (end - start)
            waypoints[i, 2] = height
        return waypoints

    def expand(
        self,
        start_pose: np.ndarray,
        end_pose: np.ndarray,
        stance_pose: Optional[np.ndarray],
        terrain: TerrainModel
    ) -> SwingPlan:
        """Compute collision-free swing waypoints for one step.

        Args:
            start_pose: (4, 4) swing foot pose at lift-off.
            end_pose: (4, 4) swing foot pose at touch-down.
            stance_pose: (4, 4) stance foot pose, or None.
            terrain: Terrain regions to clear.

        Returns:
            SwingPlan with status SOLUTION_FOUND or ADJUSTMENT_LIMIT_EXCEEDED.
        """
        p = self.parameters
        start = np.asarray(start_pose, dtype=float)[:3, 3].copy()
        end = np.asarray(end_pose, dtype=float)[:3, 3].copy()
        if np.linalg.norm(end - start) < COINCIDENT_ENDPOINT_TOLERANCE:
            end = end + COINCIDENT_ENDPOINT_NUDGE
        stance_position = None if stance_pose is None else np.asarray(stance_pose, dtype=float)[:3, 3]

        waypoints = self.initial_waypoints(start, end)
        original_waypoints = waypoints.copy()
        geometry = _SwingGeometry(start, end, waypoints[0], waypoints.mean(axis=0), p, stance_position)

        capsule_radius = p.maximum_swing_height + p.collision_sphere_radius + 2.0 * p.minimum_swing_foot_clearance
        regions = terrain.regions_near_segment(start, end, capsule_radius)
        self.collision_log = []

        tries = 0
        status = SwingStatus.SEARCHING

        if p.do_initial_fast_approximation:
            while status is SwingStatus.SEARCHING:
                fraction = self._first_polyline_collision(geometry, waypoints, regions)
                if fraction is None:
                    break
                if tries >= p.maximum_number_of_tries:
                    status = SwingStatus.ADJUSTMENT_LIMIT_EXCEEDED
                    break
                tries += 1
                if not self._adjust_waypoints(geometry, waypoints, original_waypoints, fraction):
                    status = SwingStatus.ADJUSTMENT_LIMIT_EXCEEDED
            if status is not SwingStatus.SEARCHING:
                logger.debug("Polyline approximation gave up after %d tries, checking the trajectory", tries)
            # The trajectory check runs even when the polyline pass gave up
            status = SwingStatus.SEARCHING

        while status is SwingStatus.SEARCHING:
            self.swing_generator.initialize(start, waypoints, end)
            fraction = self._first_trajectory_collision(geometry, regions)
            if fraction is None:
                status = SwingStatus.SOLUTION_FOUND
                break
            if tries >= p.maximum_number_of_tries:
                status = SwingStatus.ADJUSTMENT_LIMIT_EXCEEDED
                break
            tries += 1
            if not self._adjust_waypoints(geometry, waypoints, original_waypoints, fraction):
                status = SwingStatus.ADJUSTMENT_LIMIT_EXCEEDED

        self.swing_generator.initialize(start, waypoints, end)
        if status is not SwingStatus.SOLUTION_FOUND:
            logger.debug("Swing adjustment limit exceeded after %d tries", tries)

        return SwingPlan(
            status=status,
            waypoints=waypoints.copy(),
            max_swing_speed=self.swing_generator.get_max_speed(),
            were_waypoints_adjusted=tries > 0,
            number_of_tries=tries,
        )

    def _adjust_waypoints(self, geometry, waypoints, original_waypoints, fraction) -> bool:
        """Push both waypoints away from a collision at the given swing fraction.

        Returns False once either waypoint has moved too far from its start.
        """
        p = self.parameters
        direction = rotate_vector_about_axis(
            (geometry.start - geometry.end) / np.linalg.norm(geometry.start - geometry.end),
            geometry.plane_normal,
            np.pi * fraction,
        )
        waypoints[0] += (1.0 - fraction) * p.incremental_adjustment_distance * direction
        waypoints[1] += fraction * p.incremental_adjustment_distance * direction

        limit = p.resolved_maximum_adjustment_distance
        displacement = np.linalg.norm(waypoints - original_waypoints, axis=1)
        return bool(np.all(displacement <= limit))

    def _is_floor_contact(self, geometry, point_on_region, foot_position, rising) -> bool:
        if not is_on_or_above_plane(point_on_region, geometry.start, geometry.floor_normal):
            return True
        minimum = self.minimum_floor_distance
        if abs(signed_distance_to_plane(point_on_region, geometry.start, geometry.floor_normal)) < minimum:
            return True
        return rising and foot_position[2] - geometry.start[2] < minimum

    def _first_polyline_collision(
        self,
        geometry: _SwingGeometry,
        waypoints: np.ndarray,
        regions: Tuple[TerrainRegion, ...]
    ) -> Optional[float]:
        knots = [geometry.start, waypoints[0], waypoints[1], geometry.end]
        lengths = [np.linalg.norm(knots[i + 1] - knots[i]) for i in range(3)]
        total = sum(lengths)
        travelled = 0.0
        for i in range(3):
            for region in regions:
                distance, on_segment, on_region, s = region.distance_to_segment(knots[i], knots[i + 1])
                if distance >= self.avoidance_distance:
                    continue
                if self._is_floor_contact(geometry, on_region, on_segment, False):
                    self.collision_log.append((-1.0, CollisionType.INTERSECTION_BUT_BELOW_IGNORE_PLANE))
                    continue
                fraction = (travelled + s * lengths[i]) / total
                self.collision_log.append((fraction, CollisionType.CRITICAL_INTERSECTION))
                return fraction
            travelled += lengths[i]
        return None

    def _first_trajectory_collision(
        self,
        geometry: _SwingGeometry,
        regions: Tuple[TerrainRegion, ...]
    ) -> Optional[float]:
        avoidance = self.avoidance_distance
        rising_until = self.swing_generator.get_waypoint_time(0) / self.swing_generator.swing_duration

        for fraction in self.checkpoint_fractions():
            position = self.swing_generator.compute_at_fraction(fraction)
            rising = fraction < rising_until
            if rising and position[2] - geometry.start[2] < avoidance:
                continue
            if np.linalg.norm(position - geometry.end) < avoidance:
                continue

            for region in regions:
                closest = region.closest_point(position)
                if np.linalg.norm(closest - position) >= avoidance:
                    continue
                if self._is_floor_contact(geometry, closest, position, rising):
                    self.collision_log.append((fraction, CollisionType.INTERSECTION_BUT_BELOW_IGNORE_PLANE))
                    continue

                closer_to_ground_than_foot = (np.linalg.norm(geometry.mid_ground_point - closest)
                                              < np.linalg.norm(geometry.mid_ground_point - position))
                between_toe_and_heel = (is_on_or_above_plane(closest, geometry.toe_origin, geometry.toe_normal)
                                        and is_on_or_above_plane(closest, geometry.heel_origin, geometry.heel_normal))
                if closer_to_ground_than_foot or between_toe_and_heel:
                    self.collision_log.append((float(fraction), CollisionType.CRITICAL_INTERSECTION))
                    return float(fraction)
                self.collision_log.append((float(fraction), CollisionType.INTERSECTION_BUT_OUTSIDE_TRAJECTORY))
        return None
