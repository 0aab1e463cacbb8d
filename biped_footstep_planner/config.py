"""Default tunables for the footstep planner.

Every value here can be overridden per request through the ``from_config``
constructors in ``biped_footstep_planner.parameters``; values are checked when
a plan is requested.
Lengths are in meters, angles in radians.
"""

import numpy as np

# Foot geometry (sole frame is centred on the foot, x forward)
foot_params = {
    'foot_length': 0.22,
    'foot_width': 0.11,
}

# Lattice search, reach envelope and cost weights
planner_params = {
    # Nominal stance
    'ideal_footstep_width': 0.22,

    # Hard reach bounds, expressed in the stance foot's z-up frame
    'min_step_width': 0.12,
    'max_step_width': 0.4,
    'min_step_length': -0.15,
    'max_step_reach': 0.4,
    'max_step_z': 0.25,
    'min_step_yaw': -0.2,
    'max_step_yaw': 0.4,
    'step_yaw_reduction_factor_at_max_reach': 0.0,

    # Envelope when the stance foot is pitched back
    'minimum_surface_incline_radians': np.deg2rad(45.0),
    'minimum_step_z_when_fully_pitched': 0.05,
    'maximum_step_x_when_fully_pitched': 0.3,

    # Stepping down sharply while moving forward (inf disables the rule)
    'max_step_z_when_forward_and_down': float('inf'),
    'max_step_x_when_forward_and_down': float('inf'),
    'max_step_y_when_forward_and_down': float('inf'),

    # Stepping up sharply (inf disables the rule)
    'max_step_z_when_stepping_up': float('inf'),
    'max_step_reach_when_stepping_up': 0.4,
    'max_step_width_when_stepping_up': float('inf'),
    'translation_scale_from_grandparent_node': 0.0,

    # Foothold support
    'minimum_foothold_percent': 0.9,

    # Edge cost and heuristic
    'cost_per_step': 0.15,
    'distance_weight': 1.0,
    'yaw_weight': 0.1,
    'step_up_weight': 0.0,
    'step_down_weight': 0.0,
    'heuristic_weight': 1.0,

    # Goal tolerance (below one lattice cell, so only the goal cell matches)
    'goal_distance_proximity': 0.02,
    'goal_yaw_proximity': 0.1,

    # Termination
    'max_iterations': 5000,
    'timeout': 5.0,
    'return_best_effort_plan': False,
    'compute_swing_trajectories': True,
}

# Terrain snapping and wiggling
snap_params = {
    'min_region_area': 0.005,
    'max_region_incline': np.deg2rad(45.0),
    'wiggle_into_convex_hull': True,
    'wiggle_inside_delta': 0.01,
    'wiggle_max_translation': 0.1,
    'wiggle_max_yaw': 0.1,
    # Tie-break between regions of equal height under a foot: 'largest_overlap' or 'lowest_id'
    'region_tie_break': 'largest_overlap',
}

# Swing-over-regions trajectory expansion
swing_params = {
    'minimum_swing_height': 0.1,
    'maximum_swing_height': 0.4,
    'swing_waypoint_proportions': (0.15, 0.85),
    'touchdown_velocity': -0.3,
    'do_initial_fast_approximation': True,
    'number_of_checkpoints': 100,
    'maximum_number_of_tries': 50,
    'minimum_swing_foot_clearance': 0.04,
    'incremental_adjustment_distance': 0.03,
    # None means maximum_swing_height - minimum_swing_height
    'maximum_adjustment_distance': None,
    'minimum_height_above_floor_for_collision': 0.02,
    'min_fraction_of_swing_for_collision_check': 0.0,
    'max_fraction_of_swing_for_collision_check': 1.0,
}

# Post-processing of the finished plan
post_processing_params = {
    'area_split_fraction_processing_enabled': True,
    # Weight distribution and split fraction of a transfer with no support asymmetry
    'transfer_weight_distribution': 0.5,
    'transfer_split_fraction': 0.5,
    # Targets when the next foot has all the support area
    'fraction_load_if_foot_has_full_support': 0.6,
    'fraction_time_on_foot_if_foot_has_full_support': 0.6,
    # Targets when the previous foot has no supported width
    'fraction_load_if_other_foot_has_no_width': 0.7,
    'fraction_time_on_foot_if_other_foot_has_no_width': 0.7,
}
