"""Transfer timing from the support area of consecutive footholds.

When one foot of a transfer has less support than the other, the robot
should load it less and spend less of the transfer on it. Each transfer
gets a weight distribution and split fraction interpolated between the
configured default and the configured extreme, once from the ratio of
foothold areas and once from the ratio of supported widths.
"""

import logging
from typing import List, Sequence

import numpy as np

from biped_footstep_planner.parameters import PostProcessingParameters
from .data_types import SnapData, TransferTiming

logger = logging.getLogger(__name__)

MIN_FRACTION = 0.01
MAX_FRACTION = 0.99


def _interpolate(default: float, target: float, ratio: float) -> float:
    """Default at an even ratio, target when the next foot has it all, 1 - target when it has none."""
    if ratio >= 0.5:
        return default + 2.0 * (ratio - 0.5) * (target - default)
    return (1.0 - target) + 2.0 * ratio * (default - (1.0 - target))


def _combine(default: float, from_area: float, from_width: float) -> float:
    if default <= 0.0:
        return MIN_FRACTION
    value = default * (from_area / default) * (from_width / default)
    return float(np.clip(value, MIN_FRACTION, MAX_FRACTION))


def _share(previous: float, current: float) -> float:
    total = previous + current
    return 0.5 if total <= 0.0 else current / total


class AreaSplitFractionPostProcessor:
    """Assigns a TransferTiming to every transfer of a footstep plan."""

    def __init__(self, parameters: PostProcessingParameters, foot_width: float):
        self.parameters = parameters
        self.foot_width = foot_width

    def supported_width(self, snap_data: SnapData) -> float:
        """Lateral extent of the supported part of the sole."""
        if not snap_data.is_partial:
            return self.foot_width
        if len(snap_data.foothold) == 0:
            return 0.0
        lateral = snap_data.foothold[:, 1]
        return float(lateral.max() - lateral.min())

    def transfer_timing(self, previous: SnapData, current: SnapData, full_area: float) -> TransferTiming:
        """Timing of shifting the load from the previous foot onto the current one."""
        p = self.parameters
        previous_area = previous.foothold_area if previous.is_partial else full_area
        current_area = current.foothold_area if current.is_partial else full_area
        area_share = _share(previous_area, current_area)
        width_share = _share(self.supported_width(previous), self.supported_width(current))

        weight = _combine(
            p.transfer_weight_distribution,
            _interpolate(p.transfer_weight_distribution, p.fraction_load_if_foot_has_full_support, area_share),
            _interpolate(p.transfer_weight_distribution, p.fraction_load_if_other_foot_has_no_width, width_share),
        )
        split = _combine(
            p.transfer_split_fraction,
            _interpolate(p.transfer_split_fraction, 1.0 - p.fraction_time_on_foot_if_foot_has_full_support,
                         area_share),
            _interpolate(p.transfer_split_fraction, 1.0 - p.fraction_time_on_foot_if_other_foot_has_no_width,
                         width_share),
        )
        return TransferTiming(weight, split)

    def process(self, chain_snaps: Sequence[SnapData], full_area: float) -> List[TransferTiming]:
        """Timings for a chain of footholds starting with both start feet.

        Transfer k moves the load from chain entry k onto entry k + 1, so a
        plan of n steps gets n + 1 transfers.
        """
        timings = [
            self.transfer_timing(previous, current, full_area)
            for previous, current in zip(chain_snaps[:-1], chain_snaps[1:])
        ]
        logger.debug("Computed %d transfer timings", len(timings))
        return timings
