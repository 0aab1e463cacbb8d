"""A* footstep planner on a discretized (x, y, yaw, side) lattice.

Search state is the most recently placed foot; its parent in the search tree
is the other (stance) foot and its grandparent the pose the swing foot lifted
off from. Each ``plan()`` call owns its open set, node arena and snap cache.

Once a path is found, each step is handed to the swing-over-regions expander
and steps without a collision-free swing are flagged in the plan. Transfer
timings are then set from the support area of consecutive footholds.
"""

import heapq
import itertools
import logging
import math
import time
from typing import Dict, List, Optional, Tuple

from biped_footstep_planner.helpers.geometry_utils import transform_from_yaw_pitch_roll
from biped_footstep_planner.helpers.swing_generators.swing_over_regions_trajectory_expander import (
    SwingOverRegionsTrajectoryExpander,
)
from biped_footstep_planner.parameters import (
    FootstepPlannerParameters,
    PostProcessingParameters,
    SwingPlannerParameters,
)
from .data_types import (
    FootstepNode,
    FootstepPlan,
    GRID_SIZE_XY,
    PlannerStatus,
    PlanningRequest,
    PlanningResult,
    RejectionReason,
    RobotSide,
    SearchEdge,
    SnapData,
)
from .footstep_checker import FootstepNodeChecker, approximate_step
from .footstep_cost import FootstepCostCalculator, FootstepHeuristics
from .footstep_snapper import FootstepNodeSnapper
from .node_expansion import ParameterBasedNodeExpansion
from .plan_post_processing import AreaSplitFractionPostProcessor

logger = logging.getLogger(__name__)

ROOT = -1


class _NodeArena:
    """Append-only store of search entries linked by parent index."""

    def __init__(self):
        self.nodes: List[FootstepNode] = []
        self.parents: List[int] = []
        self.costs: List[float] = []

    def add(self, node: FootstepNode, parent: int, cost: float) -> int:
        self.nodes.append(node)
        self.parents.append(parent)
        self.costs.append(cost)
        return len(self.nodes) - 1

    def parent_node(self, index: int) -> Optional[FootstepNode]:
        parent = self.parents[index]
        return None if parent == ROOT else self.nodes[parent]

    def chain(self, index: int) -> List[int]:
        """Indices from the root to index."""
        chain = []
        while index != ROOT:
            chain.append(index)
            index = self.parents[index]
        chain.reverse()
        return chain


class AStarFootstepPlanner:
    """Lattice A* footstep planner.

    Args:
        parameters: Search, reach and snapping settings.
        swing_parameters: Swing expander settings.
        post_processing_parameters: Transfer timing settings.
    """

    def __init__(
        self,
        parameters: Optional[FootstepPlannerParameters] = None,
        swing_parameters: Optional[SwingPlannerParameters] = None,
        post_processing_parameters: Optional[PostProcessingParameters] = None
    ):
        self.parameters = parameters or FootstepPlannerParameters.from_config()
        self.swing_parameters = swing_parameters or SwingPlannerParameters.from_config()
        self.post_processing_parameters = post_processing_parameters or PostProcessingParameters.from_config()
        self.last_result: Optional[PlanningResult] = None

    def reset(self) -> None:
        self.last_result = None

    def plan(self, request: PlanningRequest) -> PlanningResult:
        """Plan footsteps from the start stance to the goal.

        Args:
            request: Start feet, goal feet, terrain and optional cancel flag.

        Returns:
            PlanningResult; never raises for infeasible or malformed requests.
        """
        start_time = time.perf_counter()
        result = self._plan(request, start_time)
        result.planning_time = time.perf_counter() - start_time
        self.last_result = result
        logger.info("Footstep planning finished: %s after %d iterations (%.3f s)",
                    result.status.name, result.iterations, result.planning_time)
        return result

    def _plan(self, request: PlanningRequest, start_time: float) -> PlanningResult:
        try:
            self.parameters.validate()
            self.swing_parameters.validate()
            self.post_processing_parameters.validate()
        except ValueError as e:
            logger.warning("Invalid planner configuration: %s", e)
            return PlanningResult(PlannerStatus.INVALID_CONFIG, message=str(e))

        start_error = _validate_start(request, self.parameters)
        if start_error:
            return PlanningResult(PlannerStatus.INVALID_CONFIG, message=start_error)
        goal_error = _validate_goal(request, self.parameters)
        if goal_error:
            return PlanningResult(PlannerStatus.INVALID_GOAL, message=goal_error)

        p = self.parameters
        snapper = FootstepNodeSnapper(p, request.terrain)
        for side, node in request.start_nodes.items():
            if not snapper.snap(node).is_valid:
                logger.warning("Start %s foot could not be snapped, assuming flat at z=%.3f",
                               side.name, request.start_height)
                pose = transform_from_yaw_pitch_roll([node.x, node.y, request.start_height], node.yaw)
                snapper.add_snap_data(node, SnapData(pose, None, None, snapper.foot_area))
        for side, node in request.goal_nodes.items():
            if not snapper.snap(node).is_valid:
                return PlanningResult(PlannerStatus.INVALID_GOAL,
                                      message=f"Goal {side.name} foot is not on steppable terrain")

        checker = FootstepNodeChecker(p, snapper)
        expansion = ParameterBasedNodeExpansion(p)
        cost_calculator = FootstepCostCalculator(p)
        heuristics = FootstepHeuristics(p, request.goal_nodes, snapper)

        arena = _NodeArena()
        open_set: List[Tuple[float, int, int]] = []
        counter = itertools.count()
        best_cost: Dict[FootstepNode, float] = {}
        rejections: Dict[FootstepNode, List[Tuple[FootstepNode, RejectionReason]]] = {}

        left = request.start_nodes[RobotSide.LEFT]
        right = request.start_nodes[RobotSide.RIGHT]
        # One root per possible first stance foot
        for stance, other in ((left, right), (right, left)):
            other_index = arena.add(other, ROOT, 0.0)
            stance_index = arena.add(stance, other_index, 0.0)
            best_cost[stance] = 0.0
            heapq.heappush(open_set, (heuristics.compute(stance, other), next(counter), stance_index))

        iterations = 0
        expanded = set()
        best_effort_index = None
        best_effort_heuristic = math.inf
        status = PlannerStatus.NO_SOLUTION
        message = 'Open set exhausted'

        while open_set:
            if request.cancel_flag is not None and request.cancel_flag.is_set():
                status, message = PlannerStatus.HALTED, 'Planning cancelled'
                break
            if iterations >= p.max_iterations:
                status, message = PlannerStatus.TIMED_OUT, f'Reached {p.max_iterations} iterations'
                break
            if time.perf_counter() - start_time > p.timeout:
                status, message = PlannerStatus.TIMED_OUT, f'Exceeded {p.timeout:.2f} s'
                break

            _, _, index = heapq.heappop(open_set)
            node = arena.nodes[index]
            parent = arena.parent_node(index)
            if heuristics.is_goal_reached(node, parent):
                plan = self._build_plan(arena, index, snapper, request, is_terminal=True)
                logger.debug("Goal reached with %d steps, cost %.3f", len(plan), plan.cost)
                return PlanningResult(PlannerStatus.SUCCESS, plan, '', iterations, len(expanded), rejections)
            if arena.costs[index] > best_cost[node]:
                continue
            iterations += 1

            expanded.add(node)
            node_heuristic = heuristics.compute(node, parent)
            if node_heuristic < best_effort_heuristic:
                best_effort_index, best_effort_heuristic = index, node_heuristic

            candidates = expansion.expand(node)
            # The goal cell is offered even when no lattice offset lands on it
            goal_candidate = request.goal_nodes.get(node.side.opposite)
            if goal_candidate is not None and goal_candidate not in candidates:
                candidates.append(goal_candidate)

            stance_snap = snapper.snap(node)
            for child in candidates:
                completes_goal = heuristics.is_goal_reached(child, node)
                known_snap = snapper.cached(child)
                if not completes_goal and known_snap is not None and known_snap.is_valid:
                    # Already snapped: skip dominated cells before running the feasibility rules
                    known_cost = arena.costs[index] + cost_calculator.compute(node, child, stance_snap, known_snap)
                    if best_cost.get(child, math.inf) <= known_cost:
                        continue

                reason = checker.check(child, node, parent)
                if reason is not None:
                    rejections.setdefault(node, []).append((child, reason))
                    continue

                edge = SearchEdge(node, child, cost_calculator.compute(node, child, stance_snap, snapper.snap(child)))
                cost = arena.costs[index] + edge.cost
                # Goal-completing entries depend on their parent, so cell dominance does not apply
                if not completes_goal:
                    if best_cost.get(child, math.inf) <= cost:
                        continue
                    best_cost[child] = cost
                child_index = arena.add(edge.child, index, cost)
                heapq.heappush(open_set, (cost + heuristics.compute(edge.child, edge.parent), next(counter), child_index))

        logger.debug("Search ended without reaching the goal: %s", message)
        plan = None
        if p.return_best_effort_plan and best_effort_index is not None and status is not PlannerStatus.NO_SOLUTION:
            plan = self._build_plan(arena, best_effort_index, snapper, request, is_terminal=False)
        return PlanningResult(status, plan, message, iterations, len(expanded), rejections)

    def _build_plan(
        self,
        arena: _NodeArena,
        index: int,
        snapper: FootstepNodeSnapper,
        request: PlanningRequest,
        is_terminal: bool
    ) -> FootstepPlan:
        chain_nodes = [arena.nodes[i] for i in arena.chain(index)]
        # The first two entries are the start feet
        steps = tuple(chain_nodes[2:])
        snap_data = tuple(snapper.snap(node) for node in steps)

        swing_plans = None
        if self.parameters.compute_swing_trajectories:
            expander = SwingOverRegionsTrajectoryExpander(self.swing_parameters)
            swing_plans = tuple(
                expander.expand(
                    snapper.snap(chain_nodes[j - 2]).transform,
                    snapper.snap(chain_nodes[j]).transform,
                    snapper.snap(chain_nodes[j - 1]).transform,
                    request.terrain,
                )
                for j in range(2, len(chain_nodes))
            )
            flagged = [i for i, swing in enumerate(swing_plans) if not swing.is_solution]
            if flagged:
                logger.warning("No collision-free swing for steps %s", flagged)

        transfers = None
        if self.post_processing_parameters.area_split_fraction_processing_enabled:
            processor = AreaSplitFractionPostProcessor(self.post_processing_parameters, self.parameters.foot_width)
            transfers = tuple(processor.process([snapper.snap(node) for node in chain_nodes], snapper.foot_area))

        return FootstepPlan(
            steps=steps,
            snap_data=snap_data,
            swing_plans=swing_plans,
            start_nodes=dict(request.start_nodes),
            cost=arena.costs[index],
            is_terminal=is_terminal,
            transfers=transfers,
        )


def _validate_start(request: PlanningRequest, parameters: FootstepPlannerParameters) -> str:
    if set(request.start_nodes) != {RobotSide.LEFT, RobotSide.RIGHT}:
        return 'Start requires exactly one left and one right foot'
    for side, node in request.start_nodes.items():
        if node.side is not side:
            return f'Start {side.name} foot is labelled {node.side.name}'
    if not math.isfinite(request.start_height):
        return 'start_height must be finite'
    if not _stance_width_feasible(request.start_nodes, parameters):
        return 'Start feet are crossed or outside the step width bounds'
    return ''


def _validate_goal(request: PlanningRequest, parameters: FootstepPlannerParameters) -> str:
    if not request.goal_nodes:
        return 'Goal requires at least one foot'
    for side, node in request.goal_nodes.items():
        if not isinstance(side, RobotSide) or node.side is not side:
            return f'Goal foot under {side} is labelled {node.side}'
    if len(request.goal_nodes) == 2 and not _stance_width_feasible(request.goal_nodes, parameters):
        return 'Goal feet are crossed or outside the step width bounds'
    return ''


def _stance_width_feasible(feet: Dict[RobotSide, FootstepNode], parameters: FootstepPlannerParameters) -> bool:
    """Either foot lies within the step width bounds of the other, up to one lattice cell."""
    left, right = feet[RobotSide.LEFT], feet[RobotSide.RIGHT]
    lower = parameters.min_step_width - GRID_SIZE_XY
    upper = parameters.max_step_width + GRID_SIZE_XY
    return any(
        lower <= approximate_step(candidate, stance)[1] <= upper
        for candidate, stance in ((left, right), (right, left))
    )
