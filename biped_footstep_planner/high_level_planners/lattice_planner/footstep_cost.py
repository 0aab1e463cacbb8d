"""Edge cost and admissible heuristic for the lattice search.

Both measure motion of the midfoot point (the foot shifted half the ideal
stance width toward the body centre), so a straight walk costs the same
whichever foot leads. The midfoot offset follows the lattice yaw; the foot
position is the snapped one when snap data is available.
"""

import math
from typing import Dict, Optional, Tuple

from biped_footstep_planner.helpers.geometry_utils import angle_difference
from biped_footstep_planner.parameters import FootstepPlannerParameters
from .data_types import FootstepNode, GRID_SIZE_XY, GRID_SIZE_YAW, RobotSide, SnapData
from .footstep_snapper import FootstepNodeSnapper


def midfoot_point(
    node: FootstepNode,
    ideal_step_width: float,
    snap_data: Optional[SnapData] = None
) -> Tuple[float, float]:
    """Midfoot point of a node, at its snapped XY when snap data is given."""
    if snap_data is not None and snap_data.is_valid:
        x, y = float(snap_data.transform[0, 3]), float(snap_data.transform[1, 3])
    else:
        x, y = node.x, node.y
    offset = -0.5 * node.side.sign * ideal_step_width
    return x - offset * math.sin(node.yaw), y + offset * math.cos(node.yaw)


def max_midfoot_step(parameters: FootstepPlannerParameters) -> float:
    """Largest midfoot displacement a single checker-valid step can produce.

    The reach rule bounds the step in the snapped stance heading; the midfoot
    offsets follow lattice yaws, which differ from snapped headings by at
    most ``max_snap_heading_change``.
    """
    p = parameters
    heading_change = min(math.pi, p.max_snap_heading_change)
    turn = min(math.pi, heading_change + p.max_yaw_magnitude)
    return p.max_step_reach + p.ideal_footstep_width * (math.sin(0.5 * turn) + math.sin(0.5 * heading_change))


class FootstepCostCalculator:
    """Cost of one step: per-step penalty plus weighted motion."""

    def __init__(self, parameters: FootstepPlannerParameters):
        self.parameters = parameters

    def compute(
        self,
        stance: FootstepNode,
        candidate: FootstepNode,
        stance_snap: Optional[SnapData] = None,
        candidate_snap: Optional[SnapData] = None
    ) -> float:
        """Edge cost of stepping from stance to candidate.

        Snapped positions and the height terms are only used when both snap
        results are available.
        """
        p = self.parameters
        snapped = (stance_snap is not None and candidate_snap is not None and
                   stance_snap.is_valid and candidate_snap.is_valid)
        if not snapped:
            stance_snap = candidate_snap = None

        stance_x, stance_y = midfoot_point(stance, p.ideal_footstep_width, stance_snap)
        candidate_x, candidate_y = midfoot_point(candidate, p.ideal_footstep_width, candidate_snap)
        displacement = math.hypot(candidate_x - stance_x, candidate_y - stance_y)
        yaw_change = abs(angle_difference(candidate.yaw, stance.yaw))
        cost = p.cost_per_step + p.distance_weight * displacement + p.yaw_weight * yaw_change

        if snapped:
            height_change = candidate_snap.transform[2, 3] - stance_snap.transform[2, 3]
            cost += p.step_up_weight * max(height_change, 0.0) + p.step_down_weight * max(-height_change, 0.0)
        return float(cost)


class FootstepHeuristics:
    """Goal test and lower bound on the remaining cost to the goal.

    The bound adds midfoot travel to the nearest goal midfoot, yaw still to
    turn and the number of steps left, each after removing what the goal
    tolerances forgive. The step count divides the remaining travel by
    ``max_midfoot_step`` and respects the alternation of feet: the foot
    just placed can only be placed again two steps later.

    With a snapper, positions are snapped ones as in the edge cost. Goal
    cells may snap away from their lattice position; the largest such
    offset is added to the distance tolerance.
    """

    def __init__(
        self,
        parameters: FootstepPlannerParameters,
        goal_nodes: Dict[RobotSide, FootstepNode],
        snapper: Optional[FootstepNodeSnapper] = None
    ):
        self.parameters = parameters
        self.goal_nodes = dict(goal_nodes)
        self.snapper = snapper
        p = parameters

        self.max_midfoot_step = max_midfoot_step(p)
        self._goal_midfoots = {
            side: midfoot_point(node, p.ideal_footstep_width) for side, node in self.goal_nodes.items()
        }
        yaw_offset = p.ideal_footstep_width * math.sin(0.5 * min(math.pi, p.goal_yaw_proximity))
        self.distance_tolerance = p.goal_distance_proximity + yaw_offset + self._goal_snap_offset()

    def _goal_snap_offset(self) -> float:
        """Largest XY distance between a goal-tolerance cell and its snapped pose."""
        if self.snapper is None:
            return 0.0
        p = self.parameters
        cells_xy = math.ceil(p.goal_distance_proximity / GRID_SIZE_XY + 1e-9)
        cells_yaw = math.ceil(min(math.pi, p.goal_yaw_proximity) / GRID_SIZE_YAW + 1e-9)

        offset = 0.0
        for goal in self.goal_nodes.values():
            for dx in range(-cells_xy, cells_xy + 1):
                for dy in range(-cells_xy, cells_xy + 1):
                    for dyaw in range(-cells_yaw, cells_yaw + 1):
                        node = FootstepNode(goal.x_index + dx, goal.y_index + dy, goal.yaw_index + dyaw, goal.side)
                        if not self.node_at_goal(node):
                            continue
                        snap_data = self.snapper.snap(node)
                        if snap_data.is_valid:
                            moved = math.hypot(snap_data.transform[0, 3] - node.x, snap_data.transform[1, 3] - node.y)
                            offset = max(offset, moved)
        return offset

    def node_at_goal(self, node: FootstepNode) -> bool:
        """Node is within position and yaw tolerance of its side's goal."""
        goal = self.goal_nodes.get(node.side)
        if goal is None:
            return False
        p = self.parameters
        distance = math.hypot(node.x - goal.x, node.y - goal.y)
        return (distance <= p.goal_distance_proximity + 1e-9 and
                abs(angle_difference(node.yaw, goal.yaw)) <= p.goal_yaw_proximity + 1e-9)

    def is_goal_reached(self, node: FootstepNode, parent: Optional[FootstepNode]) -> bool:
        if not self.node_at_goal(node):
            return False
        if len(self.goal_nodes) == 1:
            return True
        return parent is not None and self.node_at_goal(parent)

    def _steps_to_place(self, distance: float, same_side: bool) -> int:
        """Fewest steps before a foot of the given side can land at a goal midfoot distance away."""
        steps = math.ceil(max(0.0, distance - self.distance_tolerance) / self.max_midfoot_step - 1e-9)
        if same_side:
            return max(2, steps + steps % 2)
        return max(1, steps + 1 - steps % 2)

    def remaining_steps(self, node: FootstepNode, distances: Dict[RobotSide, float]) -> int:
        """Lower bound on the steps left after node, given midfoot distances to each goal."""
        finishing_step = 1 if len(self.goal_nodes) == 2 else 0
        options = []
        for side, distance in distances.items():
            if side is node.side and self.node_at_goal(node):
                options.append(finishing_step)
            else:
                options.append(self._steps_to_place(distance, side is node.side) + finishing_step)
        return max(1, min(options))

    def compute(self, node: FootstepNode, parent: Optional[FootstepNode]) -> float:
        """Admissible estimate of the cost from node to the goal."""
        p = self.parameters
        if self.is_goal_reached(node, parent):
            return 0.0

        snap_data = self.snapper.snap(node) if self.snapper is not None else None
        x, y = midfoot_point(node, p.ideal_footstep_width, snap_data)
        distances = {side: math.hypot(x - gx, y - gy) for side, (gx, gy) in self._goal_midfoots.items()}
        distance = max(0.0, min(distances.values()) - self.distance_tolerance)
        yaw_error = min(abs(angle_difference(node.yaw, goal.yaw)) for goal in self.goal_nodes.values())
        yaw_error = max(0.0, yaw_error - p.goal_yaw_proximity)

        estimate = (p.distance_weight * distance + p.yaw_weight * yaw_error
                    + p.cost_per_step * self.remaining_steps(node, distances))
        return float(p.heuristic_weight * estimate)
