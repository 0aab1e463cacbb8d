"""Bounded in-plane "wiggle" of a foot polygon into a convex region hull.

The wiggle is a small planar transform (dx, dy, dyaw) about the foot
polygon's centroid. The preferred solution is the smallest displacement that
puts every foot vertex inside the hull by ``delta_inside`` (a negative delta
lets the foot hang over the edge by that much). When no such transform
exists within the bounds, the transform that maximizes overlap area is used.
"""

import logging
from typing import Optional
import numpy as np
from scipy.optimize import minimize

from .geometry_utils import hull_half_planes, intersect_polygons, polygon_area

logger = logging.getLogger(__name__)

CONSTRAINT_TOLERANCE = 1e-6


def planar_transform(dx: float, dy: float, dyaw: float, pivot: np.ndarray) -> np.ndarray:
    """(3, 3) homogeneous 2D transform rotating by dyaw about pivot then translating."""
    c, s = np.cos(dyaw), np.sin(dyaw)
    rotation = np.array([[c, -s], [s, c]])
    transform = np.eye(3)
    transform[:2, :2] = rotation
    transform[:2, 2] = pivot - rotation @ pivot + np.array([dx, dy])
    return transform


def apply_planar_transform(transform: np.ndarray, points: np.ndarray) -> np.ndarray:
    return points @ transform[:2, :2].T + transform[:2, 2]


def _bounds(max_translation: float, max_yaw: float):
    translation = max(max_translation, 1e-9)
    yaw = max(max_yaw, 1e-9)
    return [(-translation, translation), (-translation, translation), (-yaw, yaw)]


def inside_margins(polygon: np.ndarray, hull: np.ndarray) -> np.ndarray:
    """(N, M) signed distance of each polygon vertex inside each hull edge."""
    normals, offsets = hull_half_planes(hull)
    return polygon @ normals.T - offsets


def wiggle_into_convex_hull(
    polygon: np.ndarray,
    hull: np.ndarray,
    delta_inside: float,
    max_translation: float,
    max_yaw: float,
    rotation_weight: float = 0.5
) -> Optional[np.ndarray]:
    """Smallest bounded transform moving polygon inside hull by delta_inside.

    Args:
        polygon: (N, 2) foot polygon, same frame as hull.
        hull: (M, 2) counter-clockwise convex hull.
        delta_inside: Required clearance inside every hull edge (meters).
        max_translation: Bound on |dx| and |dy| (meters).
        max_yaw: Bound on |dyaw| (radians).
        rotation_weight: Cost of rotation relative to translation.

    Returns:
        (3, 3) planar transform, or None if the constraints cannot be met.
    """
    if np.all(inside_margins(polygon, hull) >= delta_inside - CONSTRAINT_TOLERANCE):
        return np.eye(3)
    if max_translation <= 0.0 and max_yaw <= 0.0:
        return None

    pivot = polygon.mean(axis=0)
    relative = polygon - pivot
    normals, offsets = hull_half_planes(hull)

    def moved(x):
        c, s = np.cos(x[2]), np.sin(x[2])
        rotation = np.array([[c, -s], [s, c]])
        return pivot + relative @ rotation.T + x[:2]

    def constraint(x):
        return ((moved(x) @ normals.T) - offsets - delta_inside).ravel()

    def constraint_jacobian(x):
        c, s = np.cos(x[2]), np.sin(x[2])
        d_rotation = np.array([[-s, -c], [c, -s]])
        d_vertices = relative @ d_rotation.T  # (N, 2)
        jacobian = np.empty((len(polygon), len(hull), 3))
        jacobian[:, :, 0] = normals[:, 0]
        jacobian[:, :, 1] = normals[:, 1]
        jacobian[:, :, 2] = d_vertices @ normals.T
        return jacobian.reshape(-1, 3)

    weights = np.array([1.0, 1.0, rotation_weight])
    result = minimize(
        lambda x: float(np.sum(weights * x * x)),
        np.zeros(3),
        jac=lambda x: 2.0 * weights * x,
        method='SLSQP',
        bounds=_bounds(max_translation, max_yaw),
        constraints=[{'type': 'ineq', 'fun': constraint, 'jac': constraint_jacobian}],
        options={'maxiter': 100, 'ftol': 1e-10},
    )
    if not np.all(constraint(result.x) >= -CONSTRAINT_TOLERANCE):
        logger.debug("Wiggle constraints not met: %s", result.message)
        return None
    return planar_transform(result.x[0], result.x[1], result.x[2], pivot)


def maximize_overlap(
    polygon: np.ndarray,
    hull: np.ndarray,
    max_translation: float,
    max_yaw: float
) -> np.ndarray:
    """Bounded transform maximizing the overlap area of polygon with hull.

    Returns the identity when no bounded move improves the overlap.
    """
    pivot = polygon.mean(axis=0)

    def overlap(x):
        transform = planar_transform(x[0], x[1], x[2], pivot)
        intersection = intersect_polygons(apply_planar_transform(transform, polygon), hull)
        area = 0.0 if intersection is None else polygon_area(intersection)
        return -area + 1e-3 * float(np.dot(x, x))

    initial = overlap(np.zeros(3))
    if max_translation <= 0.0 and max_yaw <= 0.0:
        return np.eye(3)
    result = minimize(
        overlap,
        np.zeros(3),
        method='Powell',
        bounds=_bounds(max_translation, max_yaw),
        options={'xtol': 1e-4, 'ftol': 1e-8, 'maxiter': 50},
    )
    if result.fun >= initial:
        return np.eye(3)
    return planar_transform(result.x[0], result.x[1], result.x[2], pivot)
