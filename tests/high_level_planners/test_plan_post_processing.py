"""Unit tests for area split fraction post-processing."""

import pytest
import numpy as np

from biped_footstep_planner.helpers.planar_regions import TerrainModel, make_flat_ground_region
from biped_footstep_planner.high_level_planners.lattice_planner import (
    AreaSplitFractionPostProcessor,
    FootstepNode,
    FootstepNodeSnapper,
    RobotSide,
    SnapData,
)
from biped_footstep_planner.parameters import FootstepPlannerParameters, PostProcessingParameters

FOOT_LENGTH = 0.22
FOOT_WIDTH = 0.11
FOOT_AREA = FOOT_LENGTH * FOOT_WIDTH


@pytest.fixture
def processor():
    return AreaSplitFractionPostProcessor(PostProcessingParameters.from_config(), FOOT_WIDTH)


def full_support():
    return SnapData(np.eye(4), 0, None, FOOT_AREA)


def front_half_support():
    foothold = np.array([[0.11, 0.055], [0.0, 0.055], [0.0, -0.055], [0.11, -0.055]])
    return SnapData(np.eye(4), 0, foothold, 0.5 * FOOT_AREA)


def no_support():
    return SnapData(np.eye(4), 0, np.zeros((0, 2)), 0.0)


class TestAreaSplitFractionPostProcessor:
    """Tests for transfer timing from foothold support."""

    def test_supported_width(self, processor):
        assert processor.supported_width(full_support()) == pytest.approx(FOOT_WIDTH)
        assert processor.supported_width(front_half_support()) == pytest.approx(FOOT_WIDTH)
        assert processor.supported_width(no_support()) == 0.0

    def test_equal_support_keeps_defaults(self, processor):
        timing = processor.transfer_timing(full_support(), full_support(), FOOT_AREA)

        assert timing.weight_distribution == pytest.approx(0.5)
        assert timing.split_fraction == pytest.approx(0.5)

    def test_stepping_from_half_foothold(self, processor):
        """Test that more load goes to the next foot when the previous one has half its area."""
        timing = processor.transfer_timing(front_half_support(), full_support(), FOOT_AREA)

        # Area share 2/3 moves a third of the way from the default toward the full-support targets
        assert timing.weight_distribution == pytest.approx(0.5 + (0.6 - 0.5) / 3.0)
        assert timing.split_fraction == pytest.approx(0.5 + (0.4 - 0.5) / 3.0)

    def test_stepping_onto_half_foothold(self, processor):
        timing = processor.transfer_timing(full_support(), front_half_support(), FOOT_AREA)

        assert timing.weight_distribution == pytest.approx(0.5 - (0.6 - 0.5) / 3.0)
        assert timing.split_fraction == pytest.approx(0.5 + (0.6 - 0.5) / 3.0)

    def test_previous_foot_without_support(self, processor):
        """Test that area and width targets multiply when the previous foot has nothing under it."""
        timing = processor.transfer_timing(no_support(), full_support(), FOOT_AREA)

        assert timing.weight_distribution == pytest.approx(0.5 * (0.6 / 0.5) * (0.7 / 0.5))
        assert timing.split_fraction == pytest.approx(0.5 * (0.4 / 0.5) * (0.3 / 0.5))

    def test_fractions_clamped(self):
        params = PostProcessingParameters.from_config({
            'fraction_load_if_foot_has_full_support': 1.0,
            'fraction_load_if_other_foot_has_no_width': 1.0,
        })
        timing = AreaSplitFractionPostProcessor(params, FOOT_WIDTH).transfer_timing(
            no_support(), full_support(), FOOT_AREA)

        assert timing.weight_distribution == pytest.approx(0.99)

    def test_process_chain(self, processor):
        chain = [full_support(), full_support(), front_half_support(), full_support()]
        timings = processor.process(chain, FOOT_AREA)

        assert len(timings) == len(chain) - 1
        assert timings[0].weight_distribution == pytest.approx(0.5)
        assert timings[1].weight_distribution < 0.5, "Less load onto the partial foothold"
        assert timings[2].weight_distribution > 0.5, "More load off the partial foothold"

    def test_partial_foothold_from_snapper(self, processor):
        """Test timing for a step that lands partly over a pad edge."""
        params = FootstepPlannerParameters.from_config({
            'wiggle_into_convex_hull': False,
            'minimum_foothold_percent': 0.5,
        })
        terrain = TerrainModel([
            make_flat_ground_region(0, size=0.4),
            make_flat_ground_region(1, size=0.4, center=(2.0, 0.0)),
        ])
        snapper = FootstepNodeSnapper(params, terrain)
        stance = snapper.snap(FootstepNode.from_pose(-0.05, 0.0, 0.0, RobotSide.RIGHT))
        edge_step = snapper.snap(FootstepNode.from_pose(0.15, 0.0, 0.0, RobotSide.LEFT))
        assert not stance.is_partial
        assert edge_step.is_partial

        timing = processor.transfer_timing(stance, edge_step, snapper.foot_area)
        area_share = edge_step.foothold_area / (snapper.foot_area + edge_step.foothold_area)
        expected_weight = 0.4 + 2.0 * area_share * (0.5 - 0.4)

        assert timing.weight_distribution == pytest.approx(expected_weight)
        assert timing.weight_distribution < 0.5
        assert timing.split_fraction > 0.5


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
