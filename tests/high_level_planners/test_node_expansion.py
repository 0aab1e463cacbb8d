"""Unit tests for lattice data types and parameter-based node expansion."""

import math
import pytest

from biped_footstep_planner.high_level_planners.lattice_planner import (
    FootstepNode,
    ParameterBasedNodeExpansion,
    RobotSide,
)
from biped_footstep_planner.high_level_planners.lattice_planner.data_types import GRID_SIZE_YAW, YAW_DIVISIONS
from biped_footstep_planner.parameters import FootstepPlannerParameters


@pytest.fixture
def compact_params():
    """Small forward-only lattice: 19 offsets, no turning."""
    return FootstepPlannerParameters.from_config({
        'ideal_footstep_width': 0.2,
        'min_step_width': 0.15,
        'max_step_width': 0.25,
        'min_step_length': 0.0,
        'max_step_reach': 0.3,
        'min_step_yaw': 0.0,
        'max_step_yaw': 0.0,
    })


class TestFootstepNode:
    """Tests for lattice rounding and derived geometry."""

    def test_from_pose_rounds_half_up(self):
        node = FootstepNode.from_pose(0.125, -0.125, 0.0, RobotSide.LEFT)
        assert (node.x_index, node.y_index) == (3, -2)

    def test_equality_by_cell_and_side(self):
        a = FootstepNode.from_pose(0.301, 0.199, 0.01, RobotSide.LEFT)
        b = FootstepNode.from_pose(0.299, 0.201, -0.01, RobotSide.LEFT)
        c = FootstepNode.from_pose(0.3, 0.2, 0.0, RobotSide.RIGHT)

        assert a == b
        assert hash(a) == hash(b)
        assert a != c, "Side is part of the identity"

    def test_yaw_wraps(self):
        node = FootstepNode(0, 0, -1, RobotSide.LEFT)

        assert node.yaw_index == YAW_DIVISIONS - 1
        assert node.yaw == pytest.approx(-GRID_SIZE_YAW)
        assert FootstepNode(0, 0, YAW_DIVISIONS // 2, RobotSide.LEFT).yaw == pytest.approx(math.pi)

    def test_robot_side_helpers(self):
        assert RobotSide.LEFT.opposite is RobotSide.RIGHT
        assert RobotSide.RIGHT.negate_if_right(0.3) == -0.3
        assert RobotSide.LEFT.negate_if_left(0.3) == -0.3
        assert RobotSide.RIGHT.sign == -1.0


class TestParameterBasedNodeExpansion:
    """Tests for candidate generation around a stance foot."""

    def test_offsets_within_reach(self, compact_params):
        expansion = ParameterBasedNodeExpansion(compact_params)

        assert len(expansion.offsets) == 19
        for forward, width, yaw in expansion.offsets:
            assert math.hypot(forward, width - 0.2) <= 0.3 + 1e-9
            assert yaw == 0.0

    def test_children_are_other_side(self, compact_params):
        stance = FootstepNode.from_pose(0.0, 0.2, 0.0, RobotSide.LEFT)
        children = ParameterBasedNodeExpansion(compact_params).expand(stance)

        assert len(children) == 19
        assert all(child.side is RobotSide.RIGHT for child in children)
        assert all(child.y < stance.y for child in children), "Right foot lands to the right of the left foot"
        assert FootstepNode.from_pose(0.3, 0.0, 0.0, RobotSide.RIGHT) in children

    def test_expansion_rotates_with_stance(self, compact_params):
        stance = FootstepNode(0, 0, YAW_DIVISIONS // 4, RobotSide.LEFT)
        children = ParameterBasedNodeExpansion(compact_params).expand(stance)

        # Facing +y, the right foot is on the +x side
        assert FootstepNode.from_pose(0.2, 0.3, 0.5 * math.pi, RobotSide.RIGHT) in children
        assert all(child.yaw_index == stance.yaw_index for child in children)

    def test_deterministic(self):
        expansion = ParameterBasedNodeExpansion(FootstepPlannerParameters.from_config())
        stance = FootstepNode.from_pose(1.0, -0.5, 0.7, RobotSide.RIGHT)

        first = expansion.expand(stance)
        assert first == expansion.expand(stance)
        assert len(first) == len(set(first)), "Children should be unique"

    def test_yaw_sign_mirrored(self):
        """Test that outward turning follows the swing side."""
        params = FootstepPlannerParameters.from_config({'min_step_yaw': 0.0, 'max_step_yaw': 0.2})
        expansion = ParameterBasedNodeExpansion(params)

        from_left = expansion.expand(FootstepNode(0, 4, 0, RobotSide.LEFT))
        from_right = expansion.expand(FootstepNode(0, 0, 0, RobotSide.RIGHT))
        assert all(child.yaw <= 1e-9 for child in from_left), "Right foot turns clockwise"
        assert all(child.yaw >= -1e-9 for child in from_right), "Left foot turns counter-clockwise"

    def test_nominal_step_length(self, compact_params):
        assert ParameterBasedNodeExpansion(compact_params).nominal_step_length == pytest.approx(0.3)
        default = ParameterBasedNodeExpansion(FootstepPlannerParameters.from_config())
        assert default.nominal_step_length == pytest.approx(0.35)

    def test_cached_offsets_match_rotation(self, compact_params):
        """Test that reused cell offsets give the same children at another stance cell."""
        expansion = ParameterBasedNodeExpansion(compact_params)
        near = expansion.expand(FootstepNode(0, 0, 3, RobotSide.LEFT))
        far = expansion.expand(FootstepNode(20, -7, 3, RobotSide.LEFT))

        shifted = [(child.x_index + 20, child.y_index - 7, child.yaw_index) for child in near]
        assert shifted == [(child.x_index, child.y_index, child.yaw_index) for child in far]


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
