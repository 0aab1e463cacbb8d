"""Lattice node expansion from reach-envelope parameters."""

import math
from typing import Dict, List, Tuple

from biped_footstep_planner.parameters import FootstepPlannerParameters
from .data_types import FootstepNode, GRID_SIZE_XY, GRID_SIZE_YAW, RobotSide
from .footstep_checker import approximate_step

GRID_TOLERANCE = 1e-9


def _grid_values(lower: float, upper: float, resolution: float) -> List[float]:
    first = math.ceil(lower / resolution - GRID_TOLERANCE)
    last = math.floor(upper / resolution + GRID_TOLERANCE)
    return [i * resolution for i in range(first, last + 1)]


class ParameterBasedNodeExpansion:
    """Generates candidate footsteps from a fixed lattice of step offsets.

    Offsets are (forward, width, yaw) in the stance foot's frame, with width
    and yaw measured toward the swing side. They are built once from the
    parameters; expansion is deterministic for a given stance node.

    Rotating an offset by the stance yaw and rounding it to the grid only
    depends on the stance yaw and side, so the resulting cell offsets are
    computed once per (yaw index, side) and reused for every stance cell.
    """

    def __init__(self, parameters: FootstepPlannerParameters):
        self.parameters = parameters
        self.offsets = self._build_offsets()
        self._cell_offsets: Dict[Tuple[int, RobotSide], List[Tuple[int, int, int]]] = {}

    def _build_offsets(self) -> List[Tuple[float, float, float]]:
        p = self.parameters
        offsets = []
        for forward in _grid_values(p.min_step_length, p.max_step_reach, GRID_SIZE_XY):
            for width in _grid_values(p.min_step_width, p.max_step_width, GRID_SIZE_XY):
                if math.hypot(forward, width - p.ideal_footstep_width) > p.max_step_reach + GRID_TOLERANCE:
                    continue
                for yaw in _grid_values(p.min_step_yaw, p.max_step_yaw, GRID_SIZE_YAW):
                    offsets.append((forward, width, yaw))
        return offsets

    @property
    def nominal_step_length(self) -> float:
        """Longest forward step the lattice offers."""
        return max((forward for forward, _, _ in self.offsets), default=0.0)

    def expand(self, stance: FootstepNode) -> List[FootstepNode]:
        """Candidate placements of the other foot around a stance node.

        Args:
            stance: Node of the foot that stays on the ground.

        Returns:
            Distinct candidate nodes in a fixed order.
        """
        key = (stance.yaw_index, stance.side)
        cell_offsets = self._cell_offsets.get(key)
        if cell_offsets is None:
            cell_offsets = self._cell_offsets[key] = self._build_cell_offsets(stance.yaw_index, stance.side)

        swing_side = stance.side.opposite
        return [
            FootstepNode(stance.x_index + dx, stance.y_index + dy, stance.yaw_index + dyaw, swing_side)
            for dx, dy, dyaw in cell_offsets
        ]

    def _build_cell_offsets(self, yaw_index: int, side: RobotSide) -> List[Tuple[int, int, int]]:
        """Distinct cell offsets of the children of a stance node at the origin cell.

        Rounding a rotated offset can push it slightly outside the step
        bounds; such cells are dropped here instead of being snapped and
        rejected on every expansion.
        """
        origin = FootstepNode(0, 0, yaw_index, side)
        swing_side = side.opposite
        cos_yaw, sin_yaw = math.cos(origin.yaw), math.sin(origin.yaw)

        cells = {}
        for forward, width, yaw in self.offsets:
            lateral = swing_side.sign * width
            child = FootstepNode.from_pose(
                cos_yaw * forward - sin_yaw * lateral,
                sin_yaw * forward + cos_yaw * lateral,
                origin.yaw + swing_side.sign * yaw,
                swing_side,
            )
            if self._outside_bounds(child, origin):
                continue
            cells.setdefault((child.x_index, child.y_index, child.yaw_index - yaw_index), None)
        return list(cells)

    def _outside_bounds(self, child: FootstepNode, stance: FootstepNode) -> bool:
        p = self.parameters
        length, width, yaw = approximate_step(child, stance)
        return (
            not p.min_step_width - GRID_TOLERANCE <= width <= p.max_step_width + GRID_TOLERANCE
            or length < p.min_step_length - GRID_TOLERANCE
            or math.hypot(length, width - p.ideal_footstep_width) > p.max_step_reach + GRID_TOLERANCE
            or not p.min_step_yaw - GRID_TOLERANCE <= yaw <= p.max_step_yaw + GRID_TOLERANCE
        )
