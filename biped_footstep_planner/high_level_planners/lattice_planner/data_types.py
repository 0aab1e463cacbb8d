"""Data types for lattice footstep planning."""

import enum
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import numpy as np

from biped_footstep_planner.helpers.planar_regions import TerrainModel
from biped_footstep_planner.helpers.swing_generators.swing_over_regions_trajectory_expander import SwingPlan

GRID_SIZE_XY = 0.05
YAW_DIVISIONS = 36
GRID_SIZE_YAW = 2.0 * np.pi / YAW_DIVISIONS


class RobotSide(enum.Enum):
    LEFT = 'left'
    RIGHT = 'right'

    @property
    def opposite(self) -> 'RobotSide':
        return RobotSide.RIGHT if self is RobotSide.LEFT else RobotSide.LEFT

    @property
    def sign(self) -> float:
        """+1 for LEFT (stance-frame +y), -1 for RIGHT."""
        return 1.0 if self is RobotSide.LEFT else -1.0

    def negate_if_right(self, value: float) -> float:
        return value if self is RobotSide.LEFT else -value

    def negate_if_left(self, value: float) -> float:
        return -value if self is RobotSide.LEFT else value


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class FootstepNode:
    """Foot placement on the search lattice.

    Equality and hashing are by grid cell and side. Use ``from_pose`` to
    build a node from continuous coordinates.

    Attributes:
        x_index: Grid index along x (GRID_SIZE_XY per cell).
        y_index: Grid index along y (GRID_SIZE_XY per cell).
        yaw_index: Yaw index in [0, YAW_DIVISIONS).
        side: Which foot this node places.
    """
    x_index: int
    y_index: int
    yaw_index: int
    side: RobotSide

    def __post_init__(self):
        """Normalize the yaw index."""
        object.__setattr__(self, 'yaw_index', int(self.yaw_index) % YAW_DIVISIONS)

    @classmethod
    def from_pose(cls, x: float, y: float, yaw: float, side: RobotSide) -> 'FootstepNode':
        """Round a continuous foot pose onto the lattice."""
        return cls(
            _round_half_up(x / GRID_SIZE_XY),
            _round_half_up(y / GRID_SIZE_XY),
            _round_half_up(yaw / GRID_SIZE_YAW),
            side,
        )

    @property
    def x(self) -> float:
        return self.x_index * GRID_SIZE_XY

    @property
    def y(self) -> float:
        return self.y_index * GRID_SIZE_XY

    @property
    def yaw(self) -> float:
        """Yaw in (-pi, pi]."""
        index = self.yaw_index if self.yaw_index <= YAW_DIVISIONS // 2 else self.yaw_index - YAW_DIVISIONS
        return index * GRID_SIZE_YAW

    @property
    def xy(self) -> np.ndarray:
        return np.array([self.x, self.y])

    def __repr__(self) -> str:
        return f"FootstepNode({self.side.name}, x={self.x:.2f}, y={self.y:.2f}, yaw={self.yaw:.3f})"


@dataclass(frozen=True, eq=False)
class SnapData:
    """Result of grounding a FootstepNode on terrain.

    Attributes:
        transform: (4, 4) sole pose in world, or None if the node could not
                   be snapped.
        region_id: Id of the supporting region (None if not snapped).
        foothold: (N, 2) supported part of the foot in the sole frame, or
                  None when the whole foot is supported.
        foothold_area: Supported area (m^2).
        is_boundary: True when the foot was outside the known terrain and
                     only its height was set.
    """
    transform: Optional[np.ndarray]
    region_id: Optional[int] = None
    foothold: Optional[np.ndarray] = None
    foothold_area: float = 0.0
    is_boundary: bool = False

    @classmethod
    def empty(cls) -> 'SnapData':
        return cls(transform=None)

    @property
    def is_valid(self) -> bool:
        return self.transform is not None

    @property
    def is_partial(self) -> bool:
        return self.foothold is not None

    @property
    def position(self) -> np.ndarray:
        return self.transform[:3, 3].copy()


class RejectionReason(enum.Enum):
    """Why the feasibility checker rejected a candidate step."""
    STEP_NOT_WIDE_ENOUGH = enum.auto()
    STEP_TOO_WIDE = enum.auto()
    STEP_NOT_LONG_ENOUGH = enum.auto()
    STEP_TOO_HIGH_OR_LOW = enum.auto()
    STEP_TOO_LOW_AND_FORWARD_WHEN_PITCHED = enum.auto()
    STEP_TOO_FORWARD_AND_DOWN = enum.auto()
    STEP_TOO_WIDE_AND_DOWN = enum.auto()
    STEP_TOO_FAR = enum.auto()
    STEP_TOO_FAR_AND_HIGH = enum.auto()
    STEP_TOO_WIDE_AND_HIGH = enum.auto()
    STEP_YAWS_TOO_MUCH = enum.auto()
    COULD_NOT_SNAP = enum.auto()
    NOT_ENOUGH_AREA = enum.auto()


class PlannerStatus(enum.Enum):
    SUCCESS = enum.auto()
    TIMED_OUT = enum.auto()
    NO_SOLUTION = enum.auto()
    INVALID_GOAL = enum.auto()
    INVALID_CONFIG = enum.auto()
    HALTED = enum.auto()


@dataclass(frozen=True)
class SearchEdge:
    parent: FootstepNode
    child: FootstepNode
    cost: float


@dataclass(frozen=True)
class TransferTiming:
    """How weight moves onto the foot being stepped onto during one transfer.

    Attributes:
        weight_distribution: Share of the load on the next foot at the
                             transfer midpoint.
        split_fraction: Share of the transfer duration spent before the
                        midpoint.
    """
    weight_distribution: float
    split_fraction: float


@dataclass(frozen=True, eq=False)
class FootstepPlan:
    """Ordered foot placements from the start stance toward the goal.

    Attributes:
        steps: Planned nodes in execution order (start feet excluded).
        snap_data: SnapData of each step.
        swing_plans: SwingPlan of each step, or None if swings were not computed.
        start_nodes: Start foot per side.
        cost: Accumulated edge cost.
        is_terminal: False for best-effort partial plans.
        transfers: TransferTiming before each step plus the final one, or
                   None when post-processing is disabled.
    """
    steps: Tuple[FootstepNode, ...]
    snap_data: Tuple[SnapData, ...]
    swing_plans: Optional[Tuple[SwingPlan, ...]]
    start_nodes: Dict[RobotSide, FootstepNode]
    cost: float
    is_terminal: bool = True
    transfers: Optional[Tuple[TransferTiming, ...]] = None

    def __len__(self) -> int:
        return len(self.steps)

    @property
    def infeasible_swing_indices(self) -> List[int]:
        """Indices of steps whose swing could not be made collision free."""
        if self.swing_plans is None:
            return []
        return [i for i, swing in enumerate(self.swing_plans) if not swing.is_solution]


@dataclass
class PlanningRequest:
    """Everything a single ``plan()`` call needs.

    Attributes:
        start_nodes: Start foot per side; both sides required.
        goal_nodes: One or two goal feet, keyed by side.
        terrain: Terrain model, replaced wholesale per request.
        start_height: Height assumed for start feet that cannot be snapped.
        cancel_flag: Optional object with ``is_set()`` (e.g. threading.Event)
                     checked once per search iteration.
    """
    start_nodes: Dict[RobotSide, FootstepNode]
    goal_nodes: Dict[RobotSide, FootstepNode]
    terrain: TerrainModel
    start_height: float = 0.0
    cancel_flag: Optional[object] = None


@dataclass
class PlanningResult:
    """Outcome of a planning request.

    Attributes:
        status: Terminal status of the search.
        plan: Footstep plan (partial if not terminal), or None.
        message: Human-readable detail for non-success statuses.
        iterations: Number of open-set pops.
        expanded_nodes: Number of nodes expanded.
        rejections: Stance node -> list of (candidate, reason) rejected from it.
        planning_time: Wall-clock seconds spent.
    """
    status: PlannerStatus
    plan: Optional[FootstepPlan] = None
    message: str = ''
    iterations: int = 0
    expanded_nodes: int = 0
    rejections: Dict[FootstepNode, List[Tuple[FootstepNode, RejectionReason]]] = field(default_factory=dict)
    planning_time: float = 0.0

    @property
    def rejection_counts(self) -> Dict[RejectionReason, int]:
        counts: Dict[RejectionReason, int] = {}
        for rejected in self.rejections.values():
            for _, reason in rejected:
                counts[reason] = counts.get(reason, 0) + 1
        return counts
