"""Parameter bundles for footstep search, snapping and swing expansion.

Defaults come from ``biped_footstep_planner.config``. Construction never
rejects values; ``validate`` raises ``ValueError`` and the planner calls it at
the start of every request, turning the error into an ``INVALID_CONFIG`` result.
"""

import math
import warnings
from dataclasses import dataclass, fields
from typing import Dict, Optional, Tuple
import numpy as np

from biped_footstep_planner import config as cfg


REGION_TIE_BREAKS = ('largest_overlap', 'lowest_id')

_INF_ALLOWED = {
    'max_step_z_when_forward_and_down',
    'max_step_x_when_forward_and_down',
    'max_step_y_when_forward_and_down',
    'max_step_z_when_stepping_up',
    'max_step_width_when_stepping_up',
}


def _merge_overrides(defaults: Dict, overrides: Optional[Dict], known: set) -> Dict:
    merged = dict(defaults)
    for key, value in (overrides or {}).items():
        if key not in known:
            warnings.warn(f"Ignoring unknown parameter override '{key}'", UserWarning)
            continue
        merged[key] = value
    return merged


@dataclass
class FootstepPlannerParameters:
    """Reach envelope, cost weights, snapping and termination settings.

    Attributes mirror the keys of ``config.planner_params``,
    ``config.snap_params`` and ``config.foot_params``. Step bounds are
    expressed in the stance foot's z-up frame, with widths measured toward
    the swing side.
    """
    # Foot
    foot_length: float = cfg.foot_params['foot_length']
    foot_width: float = cfg.foot_params['foot_width']

    # Nominal stance
    ideal_footstep_width: float = cfg.planner_params['ideal_footstep_width']

    # Reach envelope
    min_step_width: float = cfg.planner_params['min_step_width']
    max_step_width: float = cfg.planner_params['max_step_width']
    min_step_length: float = cfg.planner_params['min_step_length']
    max_step_reach: float = cfg.planner_params['max_step_reach']
    max_step_z: float = cfg.planner_params['max_step_z']
    min_step_yaw: float = cfg.planner_params['min_step_yaw']
    max_step_yaw: float = cfg.planner_params['max_step_yaw']
    step_yaw_reduction_factor_at_max_reach: float = cfg.planner_params['step_yaw_reduction_factor_at_max_reach']
    minimum_surface_incline_radians: float = cfg.planner_params['minimum_surface_incline_radians']
    minimum_step_z_when_fully_pitched: float = cfg.planner_params['minimum_step_z_when_fully_pitched']
    maximum_step_x_when_fully_pitched: float = cfg.planner_params['maximum_step_x_when_fully_pitched']
    max_step_z_when_forward_and_down: float = cfg.planner_params['max_step_z_when_forward_and_down']
    max_step_x_when_forward_and_down: float = cfg.planner_params['max_step_x_when_forward_and_down']
    max_step_y_when_forward_and_down: float = cfg.planner_params['max_step_y_when_forward_and_down']
    max_step_z_when_stepping_up: float = cfg.planner_params['max_step_z_when_stepping_up']
    max_step_reach_when_stepping_up: float = cfg.planner_params['max_step_reach_when_stepping_up']
    max_step_width_when_stepping_up: float = cfg.planner_params['max_step_width_when_stepping_up']
    translation_scale_from_grandparent_node: float = cfg.planner_params['translation_scale_from_grandparent_node']
    minimum_foothold_percent: float = cfg.planner_params['minimum_foothold_percent']

    # Cost
    cost_per_step: float = cfg.planner_params['cost_per_step']
    distance_weight: float = cfg.planner_params['distance_weight']
    yaw_weight: float = cfg.planner_params['yaw_weight']
    step_up_weight: float = cfg.planner_params['step_up_weight']
    step_down_weight: float = cfg.planner_params['step_down_weight']
    heuristic_weight: float = cfg.planner_params['heuristic_weight']

    # Goal and termination
    goal_distance_proximity: float = cfg.planner_params['goal_distance_proximity']
    goal_yaw_proximity: float = cfg.planner_params['goal_yaw_proximity']
    max_iterations: int = cfg.planner_params['max_iterations']
    timeout: float = cfg.planner_params['timeout']
    return_best_effort_plan: bool = cfg.planner_params['return_best_effort_plan']
    compute_swing_trajectories: bool = cfg.planner_params['compute_swing_trajectories']

    # Snap and wiggle
    min_region_area: float = cfg.snap_params['min_region_area']
    max_region_incline: float = cfg.snap_params['max_region_incline']
    wiggle_into_convex_hull: bool = cfg.snap_params['wiggle_into_convex_hull']
    wiggle_inside_delta: float = cfg.snap_params['wiggle_inside_delta']
    wiggle_max_translation: float = cfg.snap_params['wiggle_max_translation']
    wiggle_max_yaw: float = cfg.snap_params['wiggle_max_yaw']
    region_tie_break: str = cfg.snap_params['region_tie_break']

    @classmethod
    def from_config(cls, overrides: Optional[Dict] = None) -> 'FootstepPlannerParameters':
        """Build parameters from the config defaults plus optional overrides.

        Args:
            overrides: Dict of field name -> value. Unknown keys are ignored
                       with a warning.

        Returns:
            FootstepPlannerParameters; call ``validate`` to check them.
        """
        defaults = {}
        defaults.update(cfg.foot_params)
        defaults.update(cfg.planner_params)
        defaults.update(cfg.snap_params)
        known = {f.name for f in fields(cls)}
        merged = _merge_overrides(defaults, overrides, known)
        return cls(**{k: v for k, v in merged.items() if k in known})

    def validate(self) -> None:
        """Raise ValueError if any value is out of range.

        Values are never clamped.
        """
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, (bool, str)):
                continue
            if math.isnan(value):
                raise ValueError(f"{f.name} must not be NaN")
            if math.isinf(value) and f.name not in _INF_ALLOWED:
                raise ValueError(f"{f.name} must be finite, got {value}")

        _require(self.foot_length > 0.0 and self.foot_width > 0.0, "Foot dimensions must be positive")
        _require(self.ideal_footstep_width > 0.0, "ideal_footstep_width must be positive")
        _require(self.min_step_width <= self.max_step_width, "min_step_width exceeds max_step_width")
        _require(self.max_step_reach > 0.0, "max_step_reach must be positive")
        _require(self.min_step_length <= self.max_step_reach, "min_step_length exceeds max_step_reach")
        _require(self.max_step_z >= 0.0, "max_step_z must be non-negative")
        _require(self.min_step_yaw <= self.max_step_yaw, "min_step_yaw exceeds max_step_yaw")
        _require(0.0 <= self.step_yaw_reduction_factor_at_max_reach <= 1.0,
                 "step_yaw_reduction_factor_at_max_reach must be in [0, 1]")
        _require(self.minimum_surface_incline_radians > 0.0, "minimum_surface_incline_radians must be positive")
        _require(self.max_step_reach_when_stepping_up > 0.0, "max_step_reach_when_stepping_up must be positive")
        _require(self.max_step_z_when_stepping_up >= 0.0, "max_step_z_when_stepping_up must be non-negative")
        _require(self.translation_scale_from_grandparent_node >= 0.0,
                 "translation_scale_from_grandparent_node must be non-negative")
        _require(0.0 <= self.minimum_foothold_percent <= 1.0, "minimum_foothold_percent must be in [0, 1]")

        for name in ('cost_per_step', 'distance_weight', 'yaw_weight', 'step_up_weight', 'step_down_weight'):
            _require(getattr(self, name) >= 0.0, f"{name} must be non-negative")
        # Keeps the heuristic from overestimating the remaining cost
        _require(0.0 <= self.heuristic_weight <= 1.0, "heuristic_weight must be in [0, 1]")

        _require(self.goal_distance_proximity >= 0.0, "goal_distance_proximity must be non-negative")
        _require(self.goal_yaw_proximity >= 0.0, "goal_yaw_proximity must be non-negative")
        _require(int(self.max_iterations) == self.max_iterations and self.max_iterations >= 1,
                 "max_iterations must be a positive integer")
        _require(self.timeout > 0.0, "timeout must be positive")

        _require(self.min_region_area >= 0.0, "min_region_area must be non-negative")
        _require(0.0 <= self.max_region_incline < 0.5 * np.pi, "max_region_incline must be in [0, pi/2)")
        _require(self.wiggle_max_translation >= 0.0, "wiggle_max_translation must be non-negative")
        _require(self.wiggle_max_yaw >= 0.0, "wiggle_max_yaw must be non-negative")
        _require(self.region_tie_break in REGION_TIE_BREAKS,
                 f"region_tie_break must be one of {REGION_TIE_BREAKS}")

    @property
    def foot_polygon(self) -> np.ndarray:
        """(4, 2) counter-clockwise rectangle of the sole, centred on the sole frame."""
        half_length = 0.5 * self.foot_length
        half_width = 0.5 * self.foot_width
        return np.array([
            [half_length, half_width],
            [-half_length, half_width],
            [-half_length, -half_width],
            [half_length, -half_width],
        ])

    @property
    def max_yaw_magnitude(self) -> float:
        return max(abs(self.min_step_yaw), abs(self.max_step_yaw))

    @property
    def max_snap_translation(self) -> float:
        """Upper bound on the XY distance between a node and its snapped sole."""
        if not self.wiggle_into_convex_hull:
            return 0.0
        return math.sqrt(2.0) * self.wiggle_max_translation

    @property
    def max_snap_heading_change(self) -> float:
        """Upper bound on the heading change between a node yaw and its snapped sole.

        Laying the sole on an incline of angle a turns its projected heading
        by at most pi/2 - 2 atan(cos a); a wiggle rotation in the region
        plane shows up in world XY magnified by at most 1 / cos a.
        """
        incline = min(self.max_region_incline, 0.5 * np.pi - 1e-6)
        change = 0.5 * np.pi - 2.0 * math.atan(math.cos(incline))
        if self.wiggle_into_convex_hull:
            change += self.wiggle_max_yaw / math.cos(incline)
        return float(change)


@dataclass
class SwingPlannerParameters:
    """Settings of the swing-over-regions trajectory expander.

    Attributes mirror the keys of ``config.swing_params``; ``foot_length``
    sets the collision sphere radius (half the foot length).
    """
    foot_length: float = cfg.foot_params['foot_length']
    minimum_swing_height: float = cfg.swing_params['minimum_swing_height']
    maximum_swing_height: float = cfg.swing_params['maximum_swing_height']
    swing_waypoint_proportions: Tuple[float, float] = cfg.swing_params['swing_waypoint_proportions']
    touchdown_velocity: float = cfg.swing_params['touchdown_velocity']
    do_initial_fast_approximation: bool = cfg.swing_params['do_initial_fast_approximation']
    number_of_checkpoints: int = cfg.swing_params['number_of_checkpoints']
    maximum_number_of_tries: int = cfg.swing_params['maximum_number_of_tries']
    minimum_swing_foot_clearance: float = cfg.swing_params['minimum_swing_foot_clearance']
    incremental_adjustment_distance: float = cfg.swing_params['incremental_adjustment_distance']
    maximum_adjustment_distance: Optional[float] = cfg.swing_params['maximum_adjustment_distance']
    minimum_height_above_floor_for_collision: float = cfg.swing_params['minimum_height_above_floor_for_collision']
    min_fraction_of_swing_for_collision_check: float = cfg.swing_params['min_fraction_of_swing_for_collision_check']
    max_fraction_of_swing_for_collision_check: float = cfg.swing_params['max_fraction_of_swing_for_collision_check']

    def __post_init__(self):
        self.swing_waypoint_proportions = tuple(self.swing_waypoint_proportions)

    @classmethod
    def from_config(cls, overrides: Optional[Dict] = None) -> 'SwingPlannerParameters':
        """Build swing parameters from the config defaults plus optional overrides."""
        defaults = dict(cfg.swing_params)
        defaults['foot_length'] = cfg.foot_params['foot_length']
        known = {f.name for f in fields(cls)}
        merged = _merge_overrides(defaults, overrides, known)
        return cls(**{k: v for k, v in merged.items() if k in known})

    def validate(self) -> None:
        """Raise ValueError if any value is out of range."""
        _require(self.foot_length > 0.0, "foot_length must be positive")
        _require(self.minimum_swing_height >= 0.0, "minimum_swing_height must be non-negative")
        _require(self.maximum_swing_height >= self.minimum_swing_height,
                 "maximum_swing_height must be at least minimum_swing_height")
        _require(len(self.swing_waypoint_proportions) == 2, "Exactly two swing waypoint proportions are required")
        first, second = self.swing_waypoint_proportions
        _require(0.0 < first < second < 1.0, "Swing waypoint proportions must be increasing inside (0, 1)")
        _require(self.number_of_checkpoints >= 1, "number_of_checkpoints must be at least 1")
        _require(self.maximum_number_of_tries >= 1, "maximum_number_of_tries must be at least 1")
        _require(self.minimum_swing_foot_clearance >= 0.0, "minimum_swing_foot_clearance must be non-negative")
        _require(self.incremental_adjustment_distance > 0.0, "incremental_adjustment_distance must be positive")
        _require(self.maximum_adjustment_distance is None or self.maximum_adjustment_distance >= 0.0,
                 "maximum_adjustment_distance must be non-negative")
        _require(self.minimum_height_above_floor_for_collision >= 0.0,
                 "minimum_height_above_floor_for_collision must be non-negative")
        _require(0.0 <= self.min_fraction_of_swing_for_collision_check
                 < self.max_fraction_of_swing_for_collision_check <= 1.0,
                 "Collision check fractions must satisfy 0 <= min < max <= 1")
        for name in ('minimum_swing_height', 'maximum_swing_height', 'touchdown_velocity',
                     'minimum_swing_foot_clearance', 'incremental_adjustment_distance'):
            _require(math.isfinite(getattr(self, name)), f"{name} must be finite")

    @property
    def collision_sphere_radius(self) -> float:
        return 0.5 * self.foot_length

    @property
    def resolved_maximum_adjustment_distance(self) -> float:
        if self.maximum_adjustment_distance is None:
            return self.maximum_swing_height - self.minimum_swing_height
        return self.maximum_adjustment_distance


@dataclass
class PostProcessingParameters:
    """Settings of the area split fraction post-processing.

    Attributes mirror the keys of ``config.post_processing_params``.
    Fractions are the share of load and of transfer time on the foot being
    stepped onto.
    """
    area_split_fraction_processing_enabled: bool = \
        cfg.post_processing_params['area_split_fraction_processing_enabled']
    transfer_weight_distribution: float = cfg.post_processing_params['transfer_weight_distribution']
    transfer_split_fraction: float = cfg.post_processing_params['transfer_split_fraction']
    fraction_load_if_foot_has_full_support: float = \
        cfg.post_processing_params['fraction_load_if_foot_has_full_support']
    fraction_time_on_foot_if_foot_has_full_support: float = \
        cfg.post_processing_params['fraction_time_on_foot_if_foot_has_full_support']
    fraction_load_if_other_foot_has_no_width: float = \
        cfg.post_processing_params['fraction_load_if_other_foot_has_no_width']
    fraction_time_on_foot_if_other_foot_has_no_width: float = \
        cfg.post_processing_params['fraction_time_on_foot_if_other_foot_has_no_width']

    @classmethod
    def from_config(cls, overrides: Optional[Dict] = None) -> 'PostProcessingParameters':
        known = {f.name for f in fields(cls)}
        merged = _merge_overrides(cfg.post_processing_params, overrides, known)
        return cls(**{k: v for k, v in merged.items() if k in known})

    def validate(self) -> None:
        """Raise ValueError if any fraction is outside [0, 1]."""
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool):
                continue
            _require(math.isfinite(value) and 0.0 <= value <= 1.0, f"{f.name} must be in [0, 1]")


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ValueError(message)
