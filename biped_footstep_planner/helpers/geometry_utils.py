"""Geometry utilities for footstep planning on planar-region terrain.

Rigid transforms are 4x4 homogeneous numpy arrays. Polygons are (N, 2)
arrays of counter-clockwise vertices without the closing vertex repeated.
"""

import math
import numpy as np
from typing import Optional, Tuple
from scipy.spatial.transform import Rotation
from shapely.geometry import MultiPoint, Point, Polygon
from shapely.ops import nearest_points

EPSILON = 1e-12


def wrap_angle(angle: float) -> float:
    """Wrap an angle to (-pi, pi]."""
    wrapped = np.mod(angle + np.pi, 2.0 * np.pi) - np.pi
    if wrapped <= -np.pi:
        wrapped += 2.0 * np.pi
    return float(wrapped)


def angle_difference(angle_a: float, angle_b: float) -> float:
    """Shortest signed angle from angle_b to angle_a."""
    return wrap_angle(angle_a - angle_b)


def make_transform(rotation: np.ndarray, translation: np.ndarray) -> np.ndarray:
    """Assemble a 4x4 homogeneous transform.

    Args:
        rotation: (3, 3) rotation matrix.
        translation: (3,) translation vector.

    Returns:
        transform: (4, 4) homogeneous transform.
    """
    transform = np.eye(4)
    transform[:3, :3] = rotation
    transform[:3, 3] = translation
    return transform


def transform_from_yaw_pitch_roll(
    position: np.ndarray,
    yaw: float,
    pitch: float = 0.0,
    roll: float = 0.0
) -> np.ndarray:
    """Build a transform from a position and intrinsic Z-Y-X euler angles."""
    rotation = Rotation.from_euler('ZYX', [yaw, pitch, roll]).as_matrix()
    return make_transform(rotation, np.asarray(position, dtype=float))


def yaw_pitch_roll(transform: np.ndarray) -> Tuple[float, float, float]:
    """Extract intrinsic Z-Y-X euler angles (yaw, pitch, roll) from a transform."""
    yaw, pitch, roll = Rotation.from_matrix(transform[:3, :3]).as_euler('ZYX')
    return float(yaw), float(pitch), float(roll)


def invert_transform(transform: np.ndarray) -> np.ndarray:
    """Invert a rigid transform without a general matrix inverse."""
    rotation_t = transform[:3, :3].T
    return make_transform(rotation_t, -rotation_t @ transform[:3, 3])


def transform_points(transform: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Apply a transform to points.

    Args:
        transform: (4, 4) homogeneous transform.
        points: (N, 3) points, or (N, 2) points assumed to lie at z = 0.

    Returns:
        transformed: (N, 3) transformed points.
    """
    points = np.atleast_2d(np.asarray(points, dtype=float))
    if points.shape[1] == 2:
        points = np.hstack([points, np.zeros((len(points), 1))])
    return points @ transform[:3, :3].T + transform[:3, 3]


def transform_point(transform: np.ndarray, point: np.ndarray) -> np.ndarray:
    return transform_points(transform, point)[0]


def heading(transform: np.ndarray) -> float:
    """World yaw of the transform's x-axis."""
    return math.atan2(transform[1, 0], transform[0, 0])


def pitch_angle(transform: np.ndarray) -> float:
    """Pitch of the Z-Y-X decomposition, read directly off the rotation."""
    return math.asin(min(1.0, max(-1.0, -transform[2, 0])))


def position_in_z_up_frame(frame: np.ndarray, point: np.ndarray) -> Tuple[float, float, float]:
    """Coordinates of a world point in the z-up frame of ``frame``.

    The z-up frame keeps the origin and heading of ``frame`` and drops its
    pitch and roll.
    """
    yaw = heading(frame)
    c, s = math.cos(yaw), math.sin(yaw)
    dx = point[0] - frame[0, 3]
    dy = point[1] - frame[1, 3]
    return c * dx + s * dy, -s * dx + c * dy, float(point[2] - frame[2, 3])


def orientation_from_normal_and_yaw(normal: np.ndarray, yaw: float) -> np.ndarray:
    """Rotation whose z-axis is normal and whose x-axis follows yaw in that plane.

    Args:
        normal: (3,) surface normal (need not be unit length).
        yaw: Heading angle in world frame (radians).

    Returns:
        rotation: (3, 3) rotation matrix.
    """
    z_axis = normal / np.linalg.norm(normal)
    heading = np.array([np.cos(yaw), np.sin(yaw), 0.0])
    x_axis = heading - np.dot(heading, z_axis) * z_axis
    if np.linalg.norm(x_axis) < 1e-9:
        # Heading parallel to the normal; fall back to any perpendicular axis
        x_axis = np.cross(np.array([0.0, 1.0, 0.0]), z_axis)
    x_axis /= np.linalg.norm(x_axis)
    y_axis = np.cross(z_axis, x_axis)
    return np.column_stack([x_axis, y_axis, z_axis])


def rotate_vector_about_axis(vector: np.ndarray, axis: np.ndarray, angle: float) -> np.ndarray:
    """Rotate a 3D vector by angle (right-handed) about a unit axis."""
    return Rotation.from_rotvec(np.asarray(axis, dtype=float) * angle).apply(vector)


def to_polygon(vertices: np.ndarray) -> Polygon:
    return Polygon([tuple(v[:2]) for v in vertices])


def polygon_vertices(polygon: Polygon) -> np.ndarray:
    """Counter-clockwise (N, 2) vertex array of a shapely polygon."""
    coords = np.asarray(polygon.exterior.coords)[:-1, :2]
    if polygon.exterior.is_ccw:
        return coords
    return coords[::-1].copy()


def polygon_area(vertices: np.ndarray) -> float:
    if len(vertices) < 3:
        return 0.0
    return float(to_polygon(vertices).area)


def convex_hull_2d(points: np.ndarray) -> np.ndarray:
    """Convex hull of a 2D point set as counter-clockwise (N, 2) vertices.

    Degenerate inputs (collinear or fewer than three points) yield an empty
    (0, 2) array.
    """
    hull = MultiPoint([tuple(p[:2]) for p in points]).convex_hull
    if hull.geom_type != 'Polygon' or hull.area <= EPSILON:
        return np.zeros((0, 2))
    return polygon_vertices(hull)


def hull_half_planes(hull: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Inward unit normals and offsets so that normals @ p - offsets >= 0 inside."""
    edges = np.roll(hull, -1, axis=0) - hull
    normals = np.column_stack([-edges[:, 1], edges[:, 0]])
    normals /= np.linalg.norm(normals, axis=1, keepdims=True)
    offsets = np.sum(normals * hull, axis=1)
    return normals, offsets


def polygon_inside_half_planes(
    polygon: np.ndarray,
    half_planes: Tuple[np.ndarray, np.ndarray],
    margin: float = 0.0
) -> bool:
    """True if every polygon vertex lies at least margin inside every half plane."""
    normals, offsets = half_planes
    return bool(np.all(polygon @ normals.T - offsets >= margin - 1e-9))


def intersect_polygons(vertices_a: np.ndarray, vertices_b: np.ndarray) -> Optional[np.ndarray]:
    """Intersection of two convex polygons, or None if it has no area."""
    intersection = to_polygon(vertices_a).intersection(to_polygon(vertices_b))
    if intersection.is_empty or intersection.geom_type != 'Polygon' or intersection.area <= EPSILON:
        return None
    return polygon_vertices(intersection)


def is_point_inside_polygon(point: np.ndarray, vertices: np.ndarray) -> bool:
    """Check if a 2D point is inside or on the boundary of a polygon."""
    return to_polygon(vertices).covers(Point(point[0], point[1]))


def closest_point_on_polygon_2d(point: np.ndarray, vertices: np.ndarray) -> np.ndarray:
    """Closest point of a filled polygon to a 2D point.

    Returns the point itself when it is inside.
    """
    polygon = to_polygon(vertices)
    query = Point(point[0], point[1])
    if polygon.covers(query):
        return np.array([point[0], point[1]], dtype=float)
    closest, _ = nearest_points(polygon.exterior, query)
    return np.array([closest.x, closest.y])


def closest_point_on_segment(point: np.ndarray, start: np.ndarray, end: np.ndarray) -> Tuple[np.ndarray, float]:
    """Closest point on segment start->end to point, with its fraction along the segment."""
    direction = end - start
    length_squared = np.dot(direction, direction)
    if length_squared < EPSILON:
        return start.copy(), 0.0
    fraction = float(np.clip(np.dot(point - start, direction) / length_squared, 0.0, 1.0))
    return start + fraction * direction, fraction


def closest_points_between_segments(
    p1: np.ndarray,
    q1: np.ndarray,
    p2: np.ndarray,
    q2: np.ndarray
) -> Tuple[np.ndarray, np.ndarray, float, float]:
    """Closest points between segments p1->q1 and p2->q2.

    Args:
        p1, q1: Endpoints of the first segment, (3,).
        p2, q2: Endpoints of the second segment, (3,).

    Returns:
        Tuple (c1, c2, s, t) with c1 = p1 + s (q1 - p1) and c2 = p2 + t (q2 - p2).
    """
    d1 = q1 - p1
    d2 = q2 - p2
    r = p1 - p2
    a = np.dot(d1, d1)
    e = np.dot(d2, d2)
    f = np.dot(d2, r)

    if a <= EPSILON and e <= EPSILON:
        return p1.copy(), p2.copy(), 0.0, 0.0
    if a <= EPSILON:
        s = 0.0
        t = float(np.clip(f / e, 0.0, 1.0))
    else:
        c = np.dot(d1, r)
        if e <= EPSILON:
            t = 0.0
            s = float(np.clip(-c / a, 0.0, 1.0))
        else:
            b = np.dot(d1, d2)
            denominator = a * e - b * b
            # Parallel segments: any s works, pick the start
            s = float(np.clip((b * f - c * e) / denominator, 0.0, 1.0)) if denominator > EPSILON else 0.0
            t = (b * s + f) / e
            if t < 0.0:
                t = 0.0
                s = float(np.clip(-c / a, 0.0, 1.0))
            elif t > 1.0:
                t = 1.0
                s = float(np.clip((b - c) / a, 0.0, 1.0))
    return p1 + s * d1, p2 + t * d2, float(s), float(t)


def signed_distance_to_plane(point: np.ndarray, plane_origin: np.ndarray, plane_normal: np.ndarray) -> float:
    """Signed distance of a point to a plane; positive on the normal side."""
    return float(np.dot(point - plane_origin, plane_normal) / np.linalg.norm(plane_normal))


def is_on_or_above_plane(point: np.ndarray, plane_origin: np.ndarray, plane_normal: np.ndarray) -> bool:
    return np.dot(point - plane_origin, plane_normal) >= 0.0
