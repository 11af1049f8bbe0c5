"""
Range Accumulation for LiDAR Motion Detection Evaluation

Collects the sensor distance of every evaluated point into one of the
four confusion buckets over the lifetime of a run. The buckets only
grow; the full content is rewritten to the ranges file after each frame.
"""

from __future__ import annotations

import logging
from typing import Dict, List

import numpy as np

from lidar_motion_evaluation.config_schema import EvaluationLevel
from lidar_motion_evaluation.frame import Frame

logger = logging.getLogger(__name__)

# Bucket labels in ranges file order
BUCKETS = ["TP", "FP", "TN", "FN"]


class RangeAccumulator:
    """
    Run-scoped histogram of sensor distances per confusion bucket.

    Args:
        reference_level: Level whose prediction decides the bucket of a point
    """

    def __init__(self, reference_level: EvaluationLevel = EvaluationLevel.CLUSTER):
        self.reference_level = EvaluationLevel(reference_level)
        self.ranges: Dict[str, List[float]] = {bucket: [] for bucket in BUCKETS}

    def add_frame(self, frame: Frame) -> Dict[str, int]:
        """
        Append the distances of all eligible points of a labeled frame.

        Args:
            frame: Labeled frame after range filtering

        Returns:
            Number of distances added per bucket
        """
        if not frame.is_labeled:
            raise ValueError(f"Frame {frame.timestamp} has no ground truth labels")

        is_dynamic = frame.predicted_dynamic(self.reference_level)
        gt_dynamic = frame.ground_truth_dynamic
        eligible = frame.eligible

        masks = {
            "TP": eligible & is_dynamic & gt_dynamic,
            "FP": eligible & is_dynamic & ~gt_dynamic,
            "TN": eligible & ~is_dynamic & ~gt_dynamic,
            "FN": eligible & ~is_dynamic & gt_dynamic,
        }

        added = {}
        for bucket, mask in masks.items():
            # Point order within the frame is preserved
            distances = frame.distance_to_sensor[mask]
            self.ranges[bucket].extend(float(d) for d in distances)
            added[bucket] = int(np.count_nonzero(mask))

        logger.debug(f"Accumulated ranges of frame {frame.timestamp}: {added}")
        return added

    def counts(self) -> Dict[str, int]:
        """Number of accumulated distances per bucket."""
        return {bucket: len(values) for bucket, values in self.ranges.items()}

    def format(self) -> str:
        """
        Format all buckets for the ranges file.

        One line per bucket: the label followed by its comma-separated
        distances.
        """
        lines = []
        for bucket in BUCKETS:
            values = "".join(f",{value}" for value in self.ranges[bucket])
            lines.append(f"{bucket}{values}")
        return "\n".join(lines) + "\n"


__all__ = [
    "BUCKETS",
    "RangeAccumulator",
]
