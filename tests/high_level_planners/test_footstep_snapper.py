"""Unit tests for snapping lattice nodes onto planar-region terrain."""

import pytest
import numpy as np

from biped_footstep_planner.helpers.geometry_utils import transform_points, yaw_pitch_roll
from biped_footstep_planner.helpers.planar_regions import (
    TerrainModel,
    make_flat_ground_region,
    make_inclined_region,
)
from biped_footstep_planner.helpers.polygon_wiggler import inside_margins
from biped_footstep_planner.high_level_planners.lattice_planner import (
    FootstepNode,
    FootstepNodeSnapper,
    RobotSide,
    SnapData,
)
from biped_footstep_planner.parameters import FootstepPlannerParameters


@pytest.fixture
def params():
    return FootstepPlannerParameters.from_config()


@pytest.fixture
def two_pads():
    """Two 0.4 m pads 2 m apart; the space between them counts as known terrain."""
    return TerrainModel([
        make_flat_ground_region(0, size=0.4),
        make_flat_ground_region(1, size=0.4, center=(2.0, 0.0)),
    ])


def node(x, y, yaw=0.0, side=RobotSide.LEFT):
    return FootstepNode.from_pose(x, y, yaw, side)


def sole_in_world_xy(snapper, snap_data):
    return transform_points(snap_data.transform, snapper.foot_polygon)[:, :2]


class TestFootstepNodeSnapper:
    """Tests for region selection, wiggling and caching."""

    def test_empty_terrain(self, params):
        snap_data = FootstepNodeSnapper(params, TerrainModel()).snap(node(0.0, 0.0))

        assert not snap_data.is_valid
        assert snap_data.foothold_area == 0.0

    def test_flat_ground(self, params):
        terrain = TerrainModel([make_flat_ground_region(5, size=10.0, height=0.3)])
        snapper = FootstepNodeSnapper(params, terrain)
        snap_data = snapper.snap(node(1.0, 0.5, yaw=0.7))

        assert snap_data.is_valid
        assert snap_data.region_id == 5
        assert not snap_data.is_partial
        assert not snap_data.is_boundary
        assert snap_data.foothold_area == pytest.approx(snapper.foot_area)
        assert np.allclose(snap_data.position, [1.0, 0.5, 0.3])
        yaw, pitch, roll = yaw_pitch_roll(snap_data.transform)
        assert yaw == pytest.approx(node(1.0, 0.5, yaw=0.7).yaw)
        assert pitch == pytest.approx(0.0, abs=1e-9)
        assert roll == pytest.approx(0.0, abs=1e-9)

    def test_highest_region_selected(self, params):
        terrain = TerrainModel([
            make_flat_ground_region(0, size=4.0),
            make_flat_ground_region(1, size=1.0, height=0.1),
        ])
        snap_data = FootstepNodeSnapper(params, terrain).snap(node(0.0, 0.0))

        assert snap_data.region_id == 1
        assert snap_data.position[2] == pytest.approx(0.1)

    @pytest.mark.parametrize('tie_break, expected_region', [
        ('largest_overlap', 3),
        ('lowest_id', 1),
    ])
    def test_region_tie_break(self, tie_break, expected_region):
        """Test that regions at equal height are ordered by the configured tie-break."""
        params = FootstepPlannerParameters.from_config({'region_tie_break': tie_break})
        terrain = TerrainModel([
            make_flat_ground_region(3, size=10.0),
            make_flat_ground_region(1, size=0.4, center=(0.25, 0.0)),
        ])
        snap_data = FootstepNodeSnapper(params, terrain).snap(node(0.0, 0.0))

        assert snap_data.region_id == expected_region

    def test_inclined_region(self, params):
        """Test that the sole lies flush on a ramp with its heading preserved."""
        pitch = 0.2
        ramp = make_inclined_region(0, np.zeros(3), (4.0, 4.0), pitch)
        snap_data = FootstepNodeSnapper(params, TerrainModel([ramp])).snap(node(0.5, 0.0))

        assert snap_data.position[2] == pytest.approx(0.5 * np.tan(pitch))
        assert np.allclose(snap_data.transform[:3, 2], ramp.normal), "Sole normal should match the ramp"
        assert snap_data.transform[1, 0] == pytest.approx(0.0, abs=1e-9), "Heading should stay along +x"

    def test_steep_region_ignored(self, params):
        steep = make_inclined_region(0, np.zeros(3), (4.0, 4.0), np.radians(60.0))
        assert not FootstepNodeSnapper(params, TerrainModel([steep])).snap(node(0.0, 0.0)).is_valid

    def test_outside_terrain_snaps_at_boundary(self, params):
        """Test that feet beyond the known terrain only get a height."""
        terrain = TerrainModel([make_flat_ground_region(3, size=2.0, height=0.2)])
        snapper = FootstepNodeSnapper(params, terrain)
        snap_data = snapper.snap(node(3.0, 0.0, yaw=0.5))

        assert snap_data.is_valid
        assert snap_data.is_boundary
        assert snap_data.region_id == 3
        assert not snap_data.is_partial
        assert snap_data.foothold_area == pytest.approx(snapper.foot_area)
        assert np.allclose(snap_data.position, [3.0, 0.0, 0.2])

    def test_foot_over_gap_fails(self, params, two_pads):
        assert not FootstepNodeSnapper(params, two_pads).snap(node(1.0, 0.0)).is_valid

    def test_wiggle_into_region(self, params, two_pads):
        """Test that an overhanging foot is moved inside the pad by the inside delta."""
        snapper = FootstepNodeSnapper(params, two_pads)
        snap_data = snapper.snap(node(0.15, 0.0))

        assert snap_data.region_id == 0
        assert not snap_data.is_partial
        assert snap_data.position[0] == pytest.approx(0.08, abs=2e-3)
        margins = inside_margins(sole_in_world_xy(snapper, snap_data), two_pads.get_region(0).world_hull_xy)
        assert np.all(margins >= params.wiggle_inside_delta - 1e-5)

    def test_partial_foothold_with_negative_delta(self, two_pads):
        """Test that a negative inside delta leaves the foot hanging over the edge."""
        params = FootstepPlannerParameters.from_config({'wiggle_inside_delta': -0.05})
        snapper = FootstepNodeSnapper(params, two_pads)
        snap_data = snapper.snap(node(0.2, 0.0))

        assert snap_data.is_partial
        assert snap_data.position[0] == pytest.approx(0.14, abs=2e-3)
        assert snap_data.foothold_area == pytest.approx(0.17 * 0.11, abs=5e-4)
        assert snap_data.foothold_area < snapper.foot_area

    def test_without_wiggle(self, two_pads):
        params = FootstepPlannerParameters.from_config({'wiggle_into_convex_hull': False})
        snapper = FootstepNodeSnapper(params, two_pads)
        snap_data = snapper.snap(node(0.15, 0.0))

        assert snap_data.position[0] == pytest.approx(0.15)
        assert snap_data.is_partial
        assert snap_data.foothold_area == pytest.approx(0.16 * 0.11)

    def test_cache(self, params, two_pads):
        snapper = FootstepNodeSnapper(params, two_pads)
        first = snapper.snap(node(0.0, 0.0))

        assert snapper.snap(node(0.0, 0.0)) is first
        assert snapper.cache_size == 1

        snapper.set_terrain(TerrainModel([make_flat_ground_region(0, height=1.0)]))
        assert snapper.cache_size == 0
        assert snapper.snap(node(0.0, 0.0)).position[2] == pytest.approx(1.0)

    def test_seeded_snap_data(self, params):
        snapper = FootstepNodeSnapper(params, TerrainModel())
        seeded = SnapData(np.eye(4), None, None, snapper.foot_area)
        snapper.add_snap_data(node(0.0, 0.0), seeded)

        assert snapper.snap(node(0.0, 0.0)) is seeded
        snapper.clear_cache()
        assert not snapper.snap(node(0.0, 0.0)).is_valid


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
