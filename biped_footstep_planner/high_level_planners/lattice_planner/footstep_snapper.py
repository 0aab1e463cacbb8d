"""Snap-and-wiggle grounding of lattice nodes on planar-region terrain.

A node is snapped by laying the foot flush on the highest steppable region
under its footprint, then wiggled (small in-plane move) so the foot lies
inside that region's hull. Feet outside the known terrain only get their
height set from the closest region.
"""

import logging
from typing import Dict, Optional, Tuple
import numpy as np

from biped_footstep_planner.helpers.geometry_utils import (
    EPSILON,
    convex_hull_2d,
    hull_half_planes,
    intersect_polygons,
    invert_transform,
    make_transform,
    orientation_from_normal_and_yaw,
    polygon_area,
    polygon_inside_half_planes,
    to_polygon,
    transform_from_yaw_pitch_roll,
    transform_points,
)
from biped_footstep_planner.helpers.planar_regions import TerrainModel, TerrainRegion, closest_region_xy
from biped_footstep_planner.helpers.polygon_wiggler import maximize_overlap, wiggle_into_convex_hull
from biped_footstep_planner.parameters import FootstepPlannerParameters
from .data_types import FootstepNode, SnapData

logger = logging.getLogger(__name__)

FULL_SUPPORT_TOLERANCE = 1e-6


class FootstepNodeSnapper:
    """Computes and memoizes SnapData per node for one terrain model.

    The cache belongs to whoever owns the snapper; ``set_terrain`` and
    ``clear_cache`` drop it.
    """

    def __init__(self, parameters: FootstepPlannerParameters, terrain: Optional[TerrainModel] = None):
        self.parameters = parameters
        self.foot_polygon = parameters.foot_polygon
        self.foot_area = polygon_area(self.foot_polygon)
        self._cache: Dict[FootstepNode, SnapData] = {}
        self._steppable: Tuple[TerrainRegion, ...] = ()
        self._terrain_boundary = None
        self.set_terrain(terrain if terrain is not None else TerrainModel())

    def set_terrain(self, terrain: TerrainModel) -> None:
        """Replace the terrain and drop every cached result."""
        p = self.parameters
        self._steppable = tuple(
            r for r in terrain.steppable_regions(p.min_region_area, p.max_region_incline) if len(r.world_hull_xy) >= 3
        )
        self._terrain_boundary = None
        if self._steppable:
            boundary = convex_hull_2d(np.vstack([r.world_hull_xy for r in self._steppable]))
            if len(boundary) >= 3:
                self._terrain_boundary = hull_half_planes(boundary)
        self._cache.clear()

    def clear_cache(self) -> None:
        self._cache.clear()

    def add_snap_data(self, node: FootstepNode, snap_data: SnapData) -> None:
        """Seed the cache, e.g. with the known pose of a start foot."""
        self._cache[node] = snap_data

    def cached(self, node: FootstepNode) -> Optional[SnapData]:
        """SnapData of a node if it was already computed, without computing it."""
        return self._cache.get(node)

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def snap(self, node: FootstepNode) -> SnapData:
        """SnapData of a node, computed at most once per cache lifetime."""
        snap_data = self._cache.get(node)
        if snap_data is None:
            snap_data = self._compute_snap_data(node)
            self._cache[node] = snap_data
        return snap_data

    def footprint_xy(self, node: FootstepNode) -> np.ndarray:
        """(N, 2) foot polygon at the node's pose in world XY."""
        c, s = np.cos(node.yaw), np.sin(node.yaw)
        rotation = np.array([[c, -s], [s, c]])
        return self.foot_polygon @ rotation.T + node.xy

    def _compute_snap_data(self, node: FootstepNode) -> SnapData:
        if not self._steppable:
            return SnapData.empty()

        footprint = self.footprint_xy(node)
        if self._terrain_boundary is None or not polygon_inside_half_planes(footprint, self._terrain_boundary):
            return self._snap_at_boundary(node)

        region = self._select_region(node, footprint)
        if region is None:
            logger.debug("No steppable region under %s", node)
            return SnapData.empty()

        rotation = orientation_from_normal_and_yaw(region.normal, node.yaw)
        sole = make_transform(rotation, np.array([node.x, node.y, region.plane_height_at(node.x, node.y)]))
        if self.parameters.wiggle_into_convex_hull:
            sole = self._wiggle(sole, region)

        foothold, area = self._compute_foothold(sole, region)
        return SnapData(sole, region.region_id, foothold, area)

    def _snap_at_boundary(self, node: FootstepNode) -> SnapData:
        region = closest_region_xy(self._steppable, node.xy)
        height = region.plane_height_at(node.x, node.y)
        sole = transform_from_yaw_pitch_roll(np.array([node.x, node.y, height]), node.yaw)
        return SnapData(sole, region.region_id, None, self.foot_area, is_boundary=True)

    def _select_region(self, node: FootstepNode, footprint: np.ndarray) -> Optional[TerrainRegion]:
        """Highest region overlapping the footprint.

        Regions of equal height are ordered by ``region_tie_break``: larger
        overlap first then lower id, or lower id only.
        """
        by_overlap = self.parameters.region_tie_break == 'largest_overlap'
        low, high = footprint.min(axis=0), footprint.max(axis=0)
        footprint_polygon = None
        best = None
        best_key = None
        for region in self._steppable:
            bounds = region.world_bounds_xy
            if np.any(low >= bounds[2:]) or np.any(high <= bounds[:2]):
                continue
            if polygon_inside_half_planes(footprint, region.world_half_planes):
                overlap = self.foot_area
            else:
                if footprint_polygon is None:
                    footprint_polygon = to_polygon(footprint)
                if not region.world_prepared_xy.intersects(footprint_polygon):
                    continue
                overlap = footprint_polygon.intersection(region.world_polygon_xy).area
                if overlap <= EPSILON:
                    continue
            overlap_key = -overlap if by_overlap else 0.0
            key = (-region.plane_height_at(node.x, node.y), overlap_key, region.region_id)
            if best_key is None or key < best_key:
                best, best_key = region, key
        return best

    def _wiggle(self, sole: np.ndarray, region: TerrainRegion) -> np.ndarray:
        p = self.parameters
        sole_to_region = region.transform_from_world @ sole
        foot_in_region = transform_points(sole_to_region, self.foot_polygon)[:, :2]
        if polygon_inside_half_planes(foot_in_region, region.local_half_planes, p.wiggle_inside_delta):
            return sole

        planar = wiggle_into_convex_hull(
            foot_in_region, region.convex_hull, p.wiggle_inside_delta,
            p.wiggle_max_translation, p.wiggle_max_yaw,
        )
        if planar is None:
            planar = maximize_overlap(foot_in_region, region.convex_hull, p.wiggle_max_translation, p.wiggle_max_yaw)

        wiggle = np.eye(4)
        wiggle[:2, :2] = planar[:2, :2]
        wiggle[:2, 3] = planar[:2, 2]
        return region.transform_to_world @ wiggle @ sole_to_region

    def _compute_foothold(self, sole: np.ndarray, region: TerrainRegion) -> Tuple[Optional[np.ndarray], float]:
        """Supported part of the foot in the sole frame (None if fully supported)."""
        sole_to_region = region.transform_from_world @ sole
        foot_in_region = transform_points(sole_to_region, self.foot_polygon)[:, :2]
        if polygon_inside_half_planes(foot_in_region, region.local_half_planes):
            return None, self.foot_area
        supported = intersect_polygons(foot_in_region, region.convex_hull)
        if supported is None:
            return np.zeros((0, 2)), 0.0

        area = polygon_area(supported)
        if area >= self.foot_area * (1.0 - FULL_SUPPORT_TOLERANCE):
            return None, self.foot_area
        foothold = transform_points(invert_transform(sole_to_region), supported)[:, :2]
        return foothold, area
