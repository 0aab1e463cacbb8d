"""Unit tests for the step cost and search heuristic."""

import math

import pytest
import numpy as np

from biped_footstep_planner.helpers.geometry_utils import transform_from_yaw_pitch_roll
from biped_footstep_planner.helpers.planar_regions import TerrainModel, make_flat_ground_region
from biped_footstep_planner.high_level_planners.lattice_planner import (
    FootstepCostCalculator,
    FootstepHeuristics,
    FootstepNode,
    FootstepNodeSnapper,
    RobotSide,
    SnapData,
)
from biped_footstep_planner.high_level_planners.lattice_planner.footstep_cost import midfoot_point
from biped_footstep_planner.parameters import FootstepPlannerParameters


@pytest.fixture
def params():
    return FootstepPlannerParameters.from_config({
        'ideal_footstep_width': 0.2,
        'min_step_width': 0.15,
        'max_step_width': 0.25,
        'max_step_reach': 0.3,
        'min_step_yaw': 0.0,
        'max_step_yaw': 0.0,
        'cost_per_step': 0.15,
        'distance_weight': 1.0,
        'yaw_weight': 0.1,
    })


def left(x, y=0.2, yaw=0.0):
    return FootstepNode.from_pose(x, y, yaw, RobotSide.LEFT)


def right(x, y=0.0, yaw=0.0):
    return FootstepNode.from_pose(x, y, yaw, RobotSide.RIGHT)


def snap_at(node, z):
    return SnapData(transform_from_yaw_pitch_roll([node.x, node.y, z], node.yaw), 0, None, 0.0242)


class TestMidfootPoint:

    def test_both_feet_share_midfoot(self):
        assert np.allclose(midfoot_point(left(0.0), 0.2), [0.0, 0.1])
        assert np.allclose(midfoot_point(right(0.0), 0.2), [0.0, 0.1])

    def test_follows_yaw(self):
        turned = FootstepNode.from_pose(0.0, 0.0, 0.5 * np.pi, RobotSide.LEFT)
        assert np.allclose(midfoot_point(turned, 0.2), [0.1, 0.0])

    def test_uses_snapped_position(self):
        snapped = SnapData(transform_from_yaw_pitch_roll([0.03, 0.21, 0.0], 0.0), 0, None, 0.0242)
        assert np.allclose(midfoot_point(left(0.0), 0.2, snapped), [0.03, 0.11])
        assert np.allclose(midfoot_point(left(0.0), 0.2, SnapData.empty()), [0.0, 0.1])


class TestFootstepCostCalculator:
    """Tests for the edge cost."""

    def test_straight_step(self, params):
        """Test that a 0.3 m step costs the step penalty plus the midfoot travel."""
        cost = FootstepCostCalculator(params).compute(left(0.0), right(0.3))
        assert cost == pytest.approx(0.15 + 0.3)

    def test_step_in_place(self, params):
        cost = FootstepCostCalculator(params).compute(left(0.0), right(0.0))
        assert cost == pytest.approx(0.15)

    def test_yaw_term(self, params):
        turned = FootstepNode(0, 0, -2, RobotSide.RIGHT)
        cost = FootstepCostCalculator(params).compute(left(0.0), turned)
        displacement = np.linalg.norm(np.subtract(midfoot_point(turned, 0.2), midfoot_point(left(0.0), 0.2)))
        assert cost == pytest.approx(0.15 + displacement + 0.1 * abs(turned.yaw))

    def test_height_terms(self, params):
        params.step_up_weight = 2.0
        params.step_down_weight = 1.0
        calculator = FootstepCostCalculator(params)
        stance, candidate = left(0.0), right(0.3)

        flat = calculator.compute(stance, candidate)
        up = calculator.compute(stance, candidate, snap_at(stance, 0.0), snap_at(candidate, 0.1))
        down = calculator.compute(stance, candidate, snap_at(stance, 0.1), snap_at(candidate, 0.0))
        assert up == pytest.approx(flat + 0.2)
        assert down == pytest.approx(flat + 0.1)
        assert calculator.compute(stance, candidate, None, snap_at(candidate, 0.1)) == pytest.approx(flat)

    def test_snapped_displacement(self, params):
        """Test that a wiggled candidate is charged for where it actually lands."""
        stance, candidate = left(0.0), right(0.3)
        moved = SnapData(transform_from_yaw_pitch_roll([0.25, 0.0, 0.0], 0.0), 0, None, 0.0242)

        cost = FootstepCostCalculator(params).compute(stance, candidate, snap_at(stance, 0.0), moved)
        assert cost == pytest.approx(0.15 + 0.25)


class TestFootstepHeuristics:
    """Tests for the goal test and the remaining-cost estimate."""

    @pytest.fixture
    def goal(self):
        return {RobotSide.LEFT: left(1.0), RobotSide.RIGHT: right(1.0)}

    def test_max_midfoot_step(self, params, goal):
        heuristics = FootstepHeuristics(params, goal)
        # Zero step yaw: only the snap heading change turns the midfoot offsets
        heading_change = params.max_snap_heading_change
        assert heuristics.max_midfoot_step == pytest.approx(0.3 + 2 * 0.2 * math.sin(0.5 * heading_change))

    def test_goal_requires_both_feet(self, params, goal):
        heuristics = FootstepHeuristics(params, goal)

        assert heuristics.node_at_goal(left(1.0))
        assert not heuristics.node_at_goal(left(1.05)), "Default tolerance is below one cell"
        assert heuristics.is_goal_reached(left(1.0), right(1.0))
        assert not heuristics.is_goal_reached(left(1.0), right(0.7))
        assert not heuristics.is_goal_reached(left(1.0), None)

    def test_distance_tolerance(self, params, goal):
        params.goal_distance_proximity = 0.05
        heuristics = FootstepHeuristics(params, goal)

        assert heuristics.node_at_goal(left(1.05))
        assert not heuristics.node_at_goal(left(1.1))

    def test_single_goal(self, params):
        heuristics = FootstepHeuristics(params, {RobotSide.LEFT: left(1.0)})

        assert heuristics.is_goal_reached(left(1.0), right(0.7))
        assert not heuristics.node_at_goal(right(1.0))

    def test_zero_at_goal(self, params, goal):
        assert FootstepHeuristics(params, goal).compute(left(1.0), right(1.0)) == 0.0

    def test_estimate(self, params, goal):
        heuristics = FootstepHeuristics(params, goal)
        estimate = heuristics.compute(left(0.0), right(0.0))
        # Three more steps to get the right foot within reach of its goal, then the left
        assert estimate == pytest.approx(1.0 - heuristics.distance_tolerance + 0.15 * 4)

    def test_alternating_feet(self, params):
        """Test that a goal for the foot just placed needs at least two more steps."""
        heuristics = FootstepHeuristics(params, {RobotSide.LEFT: left(0.1)})
        estimate = heuristics.compute(left(0.0), right(0.0))
        assert estimate == pytest.approx(max(0.0, 0.1 - heuristics.distance_tolerance) + 0.15 * 2)

    def test_never_overestimates_straight_walk(self, params, goal):
        """Test the estimate against the cost of the known optimal 5-step walk."""
        calculator = FootstepCostCalculator(params)
        chain = [right(0.0), left(0.0), right(0.3), left(0.6), right(0.9), left(1.0), right(1.0)]
        heuristics = FootstepHeuristics(params, goal)

        for i in range(1, len(chain)):
            remaining = sum(calculator.compute(chain[j - 1], chain[j]) for j in range(i + 1, len(chain)))
            assert heuristics.compute(chain[i], chain[i - 1]) <= remaining + 1e-9

    def test_one_step_finish_within_tolerance(self):
        """Test that a goal reached one step early, inside its tolerance, is not overestimated."""
        params = FootstepPlannerParameters.from_config({'goal_distance_proximity': 0.05})
        heuristics = FootstepHeuristics(params, {RobotSide.LEFT: left(0.3)})
        stance, parent = right(0.0), left(0.0)
        finish = left(0.25)

        assert heuristics.is_goal_reached(finish, stance)
        step_cost = FootstepCostCalculator(params).compute(stance, finish)
        assert heuristics.compute(stance, parent) <= step_cost + 1e-9

    def test_snapper_on_flat_ground(self, params, goal):
        """Test that flat ground snaps in place and leaves the estimate unchanged."""
        snapper = FootstepNodeSnapper(params, TerrainModel([make_flat_ground_region(0, size=10.0)]))
        with_snapper = FootstepHeuristics(params, goal, snapper)
        without = FootstepHeuristics(params, goal)

        assert with_snapper.distance_tolerance == pytest.approx(without.distance_tolerance)
        assert with_snapper.compute(left(0.0), right(0.0)) == pytest.approx(without.compute(left(0.0), right(0.0)))

    def test_weight_scales_estimate(self, params, goal):
        full = FootstepHeuristics(params, goal).compute(left(0.0), right(0.0))
        params.heuristic_weight = 0.5
        assert FootstepHeuristics(params, goal).compute(left(0.0), right(0.0)) == pytest.approx(0.5 * full)


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
