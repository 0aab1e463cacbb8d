"""Lattice A* footstep planner with snap-and-wiggle terrain grounding."""

from .data_types import (
    FootstepNode,
    FootstepPlan,
    PlannerStatus,
    PlanningRequest,
    PlanningResult,
    RejectionReason,
    RobotSide,
    SnapData,
    TransferTiming,
)
from .planner_interface import FootstepPlanner
from .node_expansion import ParameterBasedNodeExpansion
from .footstep_snapper import FootstepNodeSnapper
from .footstep_checker import FootstepNodeChecker, FootstepPoseChecker
from .footstep_cost import FootstepCostCalculator, FootstepHeuristics
from .plan_post_processing import AreaSplitFractionPostProcessor
from .astar_footstep_planner import AStarFootstepPlanner

__all__ = [
    'FootstepNode',
    'FootstepPlan',
    'PlannerStatus',
    'PlanningRequest',
    'PlanningResult',
    'RejectionReason',
    'RobotSide',
    'SnapData',
    'TransferTiming',
    'FootstepPlanner',
    'ParameterBasedNodeExpansion',
    'FootstepNodeSnapper',
    'FootstepNodeChecker',
    'FootstepPoseChecker',
    'FootstepCostCalculator',
    'FootstepHeuristics',
    'AreaSplitFractionPostProcessor',
    'AStarFootstepPlanner',
]
