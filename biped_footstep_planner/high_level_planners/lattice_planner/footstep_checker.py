"""Feasibility checks for a candidate step given the stance foot.

All geometric checks are done in the stance foot's z-up frame (stance
position, stance yaw only). Widths and yaws are mirrored for right-foot
candidates so one set of bounds serves both sides.
"""

import math
from typing import Optional, Tuple
import numpy as np

from biped_footstep_planner.helpers.geometry_utils import angle_difference, pitch_angle, position_in_z_up_frame
from biped_footstep_planner.parameters import FootstepPlannerParameters
from .data_types import FootstepNode, RejectionReason, RobotSide
from .footstep_snapper import FootstepNodeSnapper

CHECK_TOLERANCE = 1e-9


def _interpolate(a: float, b: float, alpha: float) -> float:
    return a + alpha * (b - a)


def approximate_step(candidate: FootstepNode, stance: FootstepNode) -> Tuple[float, float, float]:
    """(length, width, yaw) of a step from lattice coordinates alone.

    Measured in the stance node's frame and mirrored for right-foot
    candidates, like the snapped checks.
    """
    dx = candidate.x - stance.x
    dy = candidate.y - stance.y
    c, s = math.cos(stance.yaw), math.sin(stance.yaw)
    length = c * dx + s * dy
    width = candidate.side.negate_if_right(-s * dx + c * dy)
    yaw = candidate.side.negate_if_right(angle_difference(candidate.yaw, stance.yaw))
    return length, width, yaw


class FootstepPoseChecker:
    """Kinematic reach envelope of one step, as a pure function of snapped poses."""

    def __init__(self, parameters: FootstepPlannerParameters):
        self.parameters = parameters

    def check(
        self,
        candidate_side: RobotSide,
        candidate_pose: np.ndarray,
        candidate_yaw: float,
        stance_pose: np.ndarray,
        stance_yaw: float,
        grandparent_pose: Optional[np.ndarray] = None
    ) -> Optional[RejectionReason]:
        """First violated rule for stepping to candidate_pose, or None.

        Args:
            candidate_side: Side of the swing foot.
            candidate_pose: (4, 4) snapped pose of the candidate.
            candidate_yaw: Lattice yaw of the candidate.
            stance_pose: (4, 4) snapped pose of the stance foot.
            stance_yaw: Lattice yaw of the stance foot.
            grandparent_pose: (4, 4) pose the swing foot lifts off from, if known.

        Returns:
            RejectionReason of the first failed check, None if feasible.
        """
        p = self.parameters
        step_length, lateral, step_height = position_in_z_up_frame(stance_pose, candidate_pose[:3, 3])
        step_width = candidate_side.negate_if_right(lateral)
        step_reach_xy = math.hypot(abs(step_length), abs(step_width - p.ideal_footstep_width))
        max_step_z = p.max_step_z

        if step_width < p.min_step_width - CHECK_TOLERANCE:
            return RejectionReason.STEP_NOT_WIDE_ENOUGH
        if step_width > p.max_step_width + CHECK_TOLERANCE:
            return RejectionReason.STEP_TOO_WIDE
        if step_length < p.min_step_length - CHECK_TOLERANCE:
            return RejectionReason.STEP_NOT_LONG_ENOUGH
        if abs(step_height) > max_step_z + CHECK_TOLERANCE:
            return RejectionReason.STEP_TOO_HIGH_OR_LOW

        # Envelope shrinks as the stance foot pitches back (toe up)
        alpha = min(1.0, max(0.0, -pitch_angle(stance_pose) / p.minimum_surface_incline_radians))
        if alpha > 0.0:
            min_z = _interpolate(abs(max_step_z), abs(p.minimum_step_z_when_fully_pitched), alpha)
            max_x = _interpolate(abs(p.max_step_reach), p.maximum_step_x_when_fully_pitched, alpha)
            step_down_fraction = -step_height / min_z if min_z > 0.0 else (math.inf if step_height < 0.0 else 0.0)
            step_forward_fraction = step_length / max_x if max_x > 0.0 else (math.inf if step_length > 0.0 else 0.0)
            too_low = step_length > 0.0 and step_down_fraction > 1.0
            too_forward = step_height < 0.0 and step_forward_fraction > 1.0
            if too_low or too_forward:
                return RejectionReason.STEP_TOO_LOW_AND_FORWARD_WHEN_PITCHED

        max_reach = p.max_step_reach
        if step_height < -abs(p.max_step_z_when_forward_and_down):
            if step_length > p.max_step_x_when_forward_and_down + CHECK_TOLERANCE:
                return RejectionReason.STEP_TOO_FORWARD_AND_DOWN
            if step_width > p.max_step_y_when_forward_and_down + CHECK_TOLERANCE:
                return RejectionReason.STEP_TOO_WIDE_AND_DOWN
            max_reach = math.hypot(p.max_step_x_when_forward_and_down,
                                   p.max_step_y_when_forward_and_down - p.ideal_footstep_width)

        if step_reach_xy > p.max_step_reach + CHECK_TOLERANCE:
            return RejectionReason.STEP_TOO_FAR

        if step_height > p.max_step_z_when_stepping_up:
            if step_reach_xy > p.max_step_reach_when_stepping_up + CHECK_TOLERANCE:
                return RejectionReason.STEP_TOO_FAR_AND_HIGH
            if step_width > p.max_step_width_when_stepping_up + CHECK_TOLERANCE:
                return RejectionReason.STEP_TOO_WIDE_AND_HIGH
            max_reach = p.max_step_reach_when_stepping_up

        # Allowed yaw shrinks toward the edge of the envelope
        reach_3d = math.hypot(step_reach_xy, step_height)
        reach_ratio = reach_3d / max_reach if max_reach > 0.0 else 1.0
        height_ratio = abs(step_height / max_step_z) if max_step_z > 0.0 else (1.0 if step_height != 0.0 else 0.0)
        reduction_alpha = min(1.0, max(reach_ratio, height_ratio))
        reduced = 1.0 - p.step_yaw_reduction_factor_at_max_reach
        max_yaw = _interpolate(p.max_step_yaw, reduced * p.max_step_yaw, reduction_alpha)
        min_yaw = _interpolate(p.min_step_yaw, reduced * p.min_step_yaw, reduction_alpha)
        yaw_delta = candidate_side.negate_if_right(angle_difference(candidate_yaw, stance_yaw))
        if not min_yaw - CHECK_TOLERANCE <= yaw_delta <= max_yaw + CHECK_TOLERANCE:
            return RejectionReason.STEP_YAWS_TOO_MUCH

        if grandparent_pose is not None and p.translation_scale_from_grandparent_node > 0.0:
            forward, sideways, swing_height = position_in_z_up_frame(grandparent_pose, candidate_pose[:3, 3])
            swing_reach = math.hypot(forward, sideways)
            if (swing_height > p.max_step_z_when_stepping_up and
                    swing_reach > p.translation_scale_from_grandparent_node * p.max_step_reach_when_stepping_up):
                return RejectionReason.STEP_TOO_FAR_AND_HIGH

        return None


class FootstepNodeChecker:
    """Snaps a candidate node and runs every feasibility rule on it.

    This is the only producer of RejectionReason values. Candidates whose
    lattice geometry is out of bounds by more than snapping can change are
    rejected before they are snapped.
    """

    def __init__(self, parameters: FootstepPlannerParameters, snapper: FootstepNodeSnapper):
        self.parameters = parameters
        self.snapper = snapper
        self.pose_checker = FootstepPoseChecker(parameters)

    def approximate_check(self, candidate: FootstepNode, stance: FootstepNode) -> Optional[RejectionReason]:
        """Reason a step is infeasible whatever its snapped poses, or None."""
        p = self.parameters
        length, width, yaw = approximate_step(candidate, stance)
        margin = (2.0 * p.max_snap_translation + math.hypot(length, width) * p.max_snap_heading_change
                  + CHECK_TOLERANCE)

        if width < p.min_step_width - margin:
            return RejectionReason.STEP_NOT_WIDE_ENOUGH
        if width > p.max_step_width + margin:
            return RejectionReason.STEP_TOO_WIDE
        if length < p.min_step_length - margin:
            return RejectionReason.STEP_NOT_LONG_ENOUGH
        if math.hypot(length, width - p.ideal_footstep_width) > p.max_step_reach + margin:
            return RejectionReason.STEP_TOO_FAR

        # Reduced yaw bounds interpolate toward (1 - factor) * bound
        reduced = 1.0 - p.step_yaw_reduction_factor_at_max_reach
        min_yaw = min(p.min_step_yaw, reduced * p.min_step_yaw)
        max_yaw = max(p.max_step_yaw, reduced * p.max_step_yaw)
        if not min_yaw - CHECK_TOLERANCE <= yaw <= max_yaw + CHECK_TOLERANCE:
            return RejectionReason.STEP_YAWS_TOO_MUCH
        return None

    def check(
        self,
        candidate: FootstepNode,
        stance: FootstepNode,
        grandparent: Optional[FootstepNode] = None
    ) -> Optional[RejectionReason]:
        """Reason the step stance -> candidate is infeasible, or None.

        Args:
            candidate: Node to step to.
            stance: Node of the stance foot (already snapped).
            grandparent: Node the swing foot lifts off from, if known.
        """
        reason = self.approximate_check(candidate, stance)
        if reason is not None:
            return reason

        candidate_snap = self.snapper.snap(candidate)
        if not candidate_snap.is_valid:
            return RejectionReason.COULD_NOT_SNAP

        required_area = self.parameters.minimum_foothold_percent * self.snapper.foot_area
        if candidate_snap.foothold_area < required_area - CHECK_TOLERANCE:
            return RejectionReason.NOT_ENOUGH_AREA

        stance_snap = self.snapper.snap(stance)
        if not stance_snap.is_valid:
            return RejectionReason.COULD_NOT_SNAP

        grandparent_pose = None
        if grandparent is not None:
            grandparent_pose = self.snapper.snap(grandparent).transform

        return self.pose_checker.check(
            candidate.side,
            candidate_snap.transform,
            candidate.yaw,
            stance_snap.transform,
            stance.yaw,
            grandparent_pose,
        )
