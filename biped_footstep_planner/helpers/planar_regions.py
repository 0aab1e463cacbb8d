"""Planar-region terrain model.

Terrain is a set of convex planar regions, each stored as a hull in its
local frame (local z = 0 is the surface, local z-axis the normal) and a
transform from that frame to world.
"""

from dataclasses import dataclass, field
from functools import cached_property
from typing import Iterator, List, Optional, Sequence, Tuple
import numpy as np
from shapely.geometry import Point
from shapely.prepared import prep

from .geometry_utils import (
    closest_point_on_polygon_2d,
    closest_points_between_segments,
    convex_hull_2d,
    hull_half_planes,
    invert_transform,
    is_point_inside_polygon,
    make_transform,
    polygon_area,
    to_polygon,
    transform_point,
    transform_points,
)


@dataclass(frozen=True, eq=False)
class TerrainRegion:
    """Convex planar surface patch.

    Attributes:
        region_id: Identifier, unique within a TerrainModel.
        convex_hull: (N, 2) hull vertices in the region's local frame.
        transform_to_world: (4, 4) transform from local frame to world.
        local_polygons: Optional convex sub-polygons in the local frame.
    """
    region_id: int
    convex_hull: np.ndarray
    transform_to_world: np.ndarray
    local_polygons: Tuple[np.ndarray, ...] = ()

    transform_from_world: np.ndarray = field(init=False, repr=False)
    area: float = field(init=False, repr=False)
    world_hull_xy: np.ndarray = field(init=False, repr=False)

    def __post_init__(self):
        """Validate region and cache derived geometry."""
        hull = np.asarray(self.convex_hull, dtype=float)
        transform = np.asarray(self.transform_to_world, dtype=float)
        if hull.ndim != 2 or hull.shape[1] != 2 or len(hull) < 3:
            raise ValueError("Region hull needs at least three 2D vertices")
        if transform.shape != (4, 4):
            raise ValueError("transform_to_world must be a 4x4 matrix")
        ordered = convex_hull_2d(hull)
        if len(ordered) >= 3:
            hull = ordered
        object.__setattr__(self, 'convex_hull', hull)
        object.__setattr__(self, 'transform_to_world', transform)
        object.__setattr__(self, 'local_polygons', tuple(np.asarray(p, dtype=float) for p in self.local_polygons))
        object.__setattr__(self, 'transform_from_world', invert_transform(transform))
        object.__setattr__(self, 'area', polygon_area(hull))
        object.__setattr__(self, 'world_hull_xy', convex_hull_2d(self.world_vertices[:, :2]))

    @cached_property
    def world_polygon_xy(self):
        """Shapely polygon of the projected hull, built once per region."""
        return to_polygon(self.world_hull_xy)

    @cached_property
    def world_prepared_xy(self):
        return prep(self.world_polygon_xy)

    @cached_property
    def world_half_planes(self) -> Tuple[np.ndarray, np.ndarray]:
        return hull_half_planes(self.world_hull_xy)

    @cached_property
    def local_half_planes(self) -> Tuple[np.ndarray, np.ndarray]:
        return hull_half_planes(self.convex_hull)

    @cached_property
    def world_bounds_xy(self) -> np.ndarray:
        """(min_x, min_y, max_x, max_y) of the projected hull."""
        return np.concatenate([self.world_hull_xy.min(axis=0), self.world_hull_xy.max(axis=0)])

    @property
    def normal(self) -> np.ndarray:
        return self.transform_to_world[:3, 2].copy()

    @property
    def origin(self) -> np.ndarray:
        return self.transform_to_world[:3, 3].copy()

    @property
    def world_vertices(self) -> np.ndarray:
        """(N, 3) hull vertices in world frame."""
        return transform_points(self.transform_to_world, self.convex_hull)

    def is_steppable(self, min_area: float, max_incline: float) -> bool:
        """Large enough and flat enough to stand on."""
        return self.area >= min_area and self.normal[2] >= np.cos(max_incline)

    def plane_height_at(self, x: float, y: float) -> Optional[float]:
        """Height of the (unbounded) region plane at a world XY location.

        Returns None for near-vertical regions.
        """
        normal = self.normal
        if abs(normal[2]) < 1e-9:
            return None
        origin = self.origin
        return float(origin[2] - (normal[0] * (x - origin[0]) + normal[1] * (y - origin[1])) / normal[2])

    def contains_xy(self, point_xy: np.ndarray) -> bool:
        """Check if a world XY point lies inside the projected hull."""
        if len(self.world_hull_xy) < 3:
            return False
        return self.world_prepared_xy.covers(Point(point_xy[0], point_xy[1]))

    def distance_xy(self, point_xy: np.ndarray) -> float:
        """Distance from a world XY point to the projected hull (0 inside)."""
        if len(self.world_hull_xy) < 3:
            return np.inf
        closest = closest_point_on_polygon_2d(point_xy, self.world_hull_xy)
        return float(np.linalg.norm(closest - np.asarray(point_xy[:2], dtype=float)))

    def closest_point(self, point: np.ndarray) -> np.ndarray:
        """Closest point of the region surface to a world point."""
        local = transform_point(self.transform_from_world, point)
        closest_xy = closest_point_on_polygon_2d(local[:2], self.convex_hull)
        return transform_point(self.transform_to_world, np.array([closest_xy[0], closest_xy[1], 0.0]))

    def distance_to_segment(
        self,
        start: np.ndarray,
        end: np.ndarray
    ) -> Tuple[float, np.ndarray, np.ndarray, float]:
        """Closest approach between a world segment and the region surface.

        Args:
            start: (3,) segment start in world frame.
            end: (3,) segment end in world frame.

        Returns:
            Tuple (distance, point_on_segment, point_on_region, fraction) with
            both points in world frame and fraction along start->end.
        """
        p = transform_point(self.transform_from_world, start)
        q = transform_point(self.transform_from_world, end)

        if p[2] * q[2] <= 0.0 and p[2] != q[2]:
            fraction = p[2] / (p[2] - q[2])
            crossing = p + fraction * (q - p)
            if is_point_inside_polygon(crossing[:2], self.convex_hull):
                world_crossing = transform_point(self.transform_to_world, crossing)
                return 0.0, world_crossing, world_crossing.copy(), float(fraction)

        candidates = []
        for point, fraction in ((p, 0.0), (q, 1.0)):
            closest_xy = closest_point_on_polygon_2d(point[:2], self.convex_hull)
            on_region = np.array([closest_xy[0], closest_xy[1], 0.0])
            candidates.append((np.linalg.norm(point - on_region), point, on_region, fraction))

        hull = self.convex_hull
        for i in range(len(hull)):
            edge_start = np.array([hull[i, 0], hull[i, 1], 0.0])
            edge_end = np.array([hull[(i + 1) % len(hull), 0], hull[(i + 1) % len(hull), 1], 0.0])
            on_segment, on_region, s, _ = closest_points_between_segments(p, q, edge_start, edge_end)
            candidates.append((np.linalg.norm(on_segment - on_region), on_segment, on_region, s))

        distance, on_segment, on_region, fraction = min(candidates, key=lambda c: c[0])
        return (
            float(distance),
            transform_point(self.transform_to_world, on_segment),
            transform_point(self.transform_to_world, on_region),
            float(fraction),
        )


class TerrainModel:
    """Immutable collection of planar regions, replaced wholesale per request."""

    def __init__(self, regions: Sequence[TerrainRegion] = ()):
        self._regions: Tuple[TerrainRegion, ...] = tuple(regions)
        ids = [region.region_id for region in self._regions]
        if len(set(ids)) != len(ids):
            raise ValueError("Region ids must be unique")

    @property
    def regions(self) -> Tuple[TerrainRegion, ...]:
        return self._regions

    def __len__(self) -> int:
        return len(self._regions)

    def __iter__(self) -> Iterator[TerrainRegion]:
        return iter(self._regions)

    def is_empty(self) -> bool:
        return len(self._regions) == 0

    def get_region(self, region_id: int) -> Optional[TerrainRegion]:
        for region in self._regions:
            if region.region_id == region_id:
                return region
        return None

    def steppable_regions(self, min_area: float, max_incline: float) -> Tuple[TerrainRegion, ...]:
        return tuple(r for r in self._regions if r.is_steppable(min_area, max_incline))

    def regions_near_segment(self, start: np.ndarray, end: np.ndarray, distance: float) -> Tuple[TerrainRegion, ...]:
        """Regions intersecting the capsule of the given radius around start->end."""
        return tuple(r for r in self._regions if r.distance_to_segment(start, end)[0] <= distance)


def closest_region_xy(regions: Sequence[TerrainRegion], point_xy: np.ndarray) -> Optional[TerrainRegion]:
    """Region whose projected hull is closest to a world XY point.

    Ties are broken by the lower region id.
    """
    best = None
    best_key = None
    for region in regions:
        key = (region.distance_xy(point_xy), region.region_id)
        if best_key is None or key < best_key:
            best, best_key = region, key
    return best


def region_from_world_polygon(region_id: int, world_vertices: np.ndarray, normal: np.ndarray) -> TerrainRegion:
    """Build a region from coplanar world vertices and its outward normal."""
    world_vertices = np.asarray(world_vertices, dtype=float)
    origin = world_vertices.mean(axis=0)
    z_axis = np.asarray(normal, dtype=float)
    z_axis = z_axis / np.linalg.norm(z_axis)
    reference = np.array([1.0, 0.0, 0.0]) if abs(z_axis[0]) < 0.9 else np.array([0.0, 0.0, 1.0])
    x_axis = reference - np.dot(reference, z_axis) * z_axis
    x_axis /= np.linalg.norm(x_axis)
    y_axis = np.cross(z_axis, x_axis)
    transform = make_transform(np.column_stack([x_axis, y_axis, z_axis]), origin)
    local = transform_points(invert_transform(transform), world_vertices)[:, :2]
    return TerrainRegion(region_id, local, transform)


def make_flat_ground_region(
    region_id: int = 0,
    size: float = 100.0,
    height: float = 0.0,
    center: Tuple[float, float] = (0.0, 0.0)
) -> TerrainRegion:
    """Square horizontal region of the given side length."""
    half = 0.5 * size
    hull = np.array([[half, half], [-half, half], [-half, -half], [half, -half]])
    transform = make_transform(np.eye(3), np.array([center[0], center[1], height]))
    return TerrainRegion(region_id, hull, transform)


def make_inclined_region(
    region_id: int,
    center: np.ndarray,
    size: Tuple[float, float],
    pitch: float,
    yaw: float = 0.0
) -> TerrainRegion:
    """Rectangular ramp rising along its local x-axis by pitch radians.

    Args:
        region_id: Region identifier.
        center: (3,) ramp centre in world frame.
        size: (length, width) of the ramp surface (meters).
        pitch: Incline; positive rises toward +x of the ramp heading.
        yaw: Ramp heading in world frame.
    """
    half_length, half_width = 0.5 * size[0], 0.5 * size[1]
    hull = np.array([[half_length, half_width], [-half_length, half_width],
                     [-half_length, -half_width], [half_length, -half_width]])
    cy, sy = np.cos(yaw), np.sin(yaw)
    cp, sp = np.cos(pitch), np.sin(pitch)
    yaw_rotation = np.array([[cy, -sy, 0.0], [sy, cy, 0.0], [0.0, 0.0, 1.0]])
    # Negative rotation about y lifts the +x edge
    pitch_rotation = np.array([[cp, 0.0, -sp], [0.0, 1.0, 0.0], [sp, 0.0, cp]])
    transform = make_transform(yaw_rotation @ pitch_rotation, np.asarray(center, dtype=float))
    return TerrainRegion(region_id, hull, transform)


def make_box_regions(
    center: np.ndarray,
    size: Tuple[float, float, float],
    first_region_id: int
) -> List[TerrainRegion]:
    """Top face and four side faces of an axis-aligned box standing on z = center[2].

    Args:
        center: (x, y, z) with z the height of the box bottom.
        size: (length_x, width_y, height) of the box (meters).
        first_region_id: Id of the top face; side faces take the next ids.

    Returns:
        List of five TerrainRegion objects.
    """
    cx, cy, bottom = center
    dx, dy, height = 0.5 * size[0], 0.5 * size[1], size[2]
    top = bottom + height
    regions = [region_from_world_polygon(first_region_id, np.array([
        [cx + dx, cy + dy, top], [cx - dx, cy + dy, top],
        [cx - dx, cy - dy, top], [cx + dx, cy - dy, top]]), [0.0, 0.0, 1.0])]

    sides = [
        ([1.0, 0.0, 0.0], [[cx + dx, cy - dy], [cx + dx, cy + dy]]),
        ([-1.0, 0.0, 0.0], [[cx - dx, cy + dy], [cx - dx, cy - dy]]),
        ([0.0, 1.0, 0.0], [[cx + dx, cy + dy], [cx - dx, cy + dy]]),
        ([0.0, -1.0, 0.0], [[cx - dx, cy - dy], [cx + dx, cy - dy]]),
    ]
    for offset, (normal, (a, b)) in enumerate(sides, start=1):
        vertices = np.array([[a[0], a[1], bottom], [b[0], b[1], bottom],
                             [b[0], b[1], top], [a[0], a[1], top]])
        regions.append(region_from_world_polygon(first_region_id + offset, vertices, normal))
    return regions


def generate_cylinder_top_polygon(radius: float, num_vertices: int = 8) -> np.ndarray:
    """Regular polygon inscribed in a circle, centred on the origin.

    Args:
        radius: Circle radius (meters).
        num_vertices: Number of polygon vertices (default: 8 for octagon).

    Returns:
        vertices: (num_vertices, 2) counter-clockwise vertices.
    """
    angles = np.linspace(0, 2 * np.pi, num_vertices, endpoint=False)
    return np.column_stack([radius * np.cos(angles), radius * np.sin(angles)])


def build_stepping_stone_regions(
    x_range: Tuple[float, float],
    y_range: Tuple[float, float],
    x_step: float,
    y_step: float,
    radius: float,
    height: float,
    first_region_id: int = 0
) -> List[TerrainRegion]:
    """Build a regular grid of flat cylindrical stepping stones.

    Args:
        x_range: (x_min, x_max) range for stone centres (meters).
        y_range: (y_min, y_max) range for stone centres (meters).
        x_step: Spacing between stone centres along x (meters).
        y_step: Spacing between stone centres along y (meters).
        radius: Stone radius (meters).
        height: Height of stone tops (meters).
        first_region_id: Id of the first stone; ids increase along y then x.

    Returns:
        List of TerrainRegion, one octagonal top per stone.
    """
    regions = []
    x_min, x_max = x_range
    y_min, y_max = y_range

    x_positions = np.arange(x_min, x_max + x_step / 2, x_step)
    y_positions = np.arange(y_min, y_max + y_step / 2, y_step)

    region_id = first_region_id
    for x in x_positions:
        for y in y_positions:
            transform = make_transform(np.eye(3), np.array([x, y, height]))
            regions.append(TerrainRegion(region_id, generate_cylinder_top_polygon(radius), transform))
            region_id += 1

    return regions
