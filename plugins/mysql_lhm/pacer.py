"""
Adaptive Pacer

Row width, index selectivity and server load are unknown up front, so the
chunk size (stride) is found empirically: an exponentially weighted average
of rows/second is turned into the stride that should take
``target_query_seconds`` per statement.
"""

import math
import logging

logger = logging.getLogger(__name__)

SMOOTHING_FACTOR = 0.5
MIN_ADJUSTMENT_RATIO = 0.5
MAX_ADJUSTMENT_RATIO = 3.0


class AdaptivePacer:
    """Smoothed throughput estimate and the stride derived from it."""

    def __init__(self, stride: int, stride_max: int, target_query_seconds: float):
        """
        Args:
            stride: Stride in effect when the copy loop starts; also the lower clamp
            stride_max: Upper clamp
            target_query_seconds: Desired duration of each chunk statement
        """
        self.stride = stride
        self.stride_floor = stride
        self.stride_max = stride_max
        self.target_query_seconds = target_query_seconds
        self.weighted_avg_pace = 0.0

    def record(self, rows_copied: int, elapsed_seconds: float) -> int:
        """
        Feed one chunk sample and return the stride for the next chunk.

        Samples without a positive duration carry no rate and are ignored.
        """
        if elapsed_seconds <= 0:
            return self.stride

        rows_per_sec = rows_copied / elapsed_seconds
        self.weighted_avg_pace += SMOOTHING_FACTOR * (rows_per_sec - self.weighted_avg_pace)

        if self.weighted_avg_pace:
            target_stride = self.target_query_seconds * self.weighted_avg_pace
            ratio = max(min(target_stride / self.stride, MAX_ADJUSTMENT_RATIO), MIN_ADJUSTMENT_RATIO)
            stride = max(min(ratio * self.stride, self.stride_max), self.stride_floor)
            self.stride = int(math.ceil(stride))
            logger.debug(
                f"Pace {self.weighted_avg_pace:,.0f} rows/sec -> stride {self.stride}"
            )

        return self.stride
