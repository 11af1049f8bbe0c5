"""
Frame Evaluator for LiDAR Motion Detection

Scores each incoming classified frame against ground truth:

1. The timings file is refreshed for every frame.
2. The ground truth handler labels the frame if labels exist for it;
   unlabeled frames are skipped.
3. Points within [min_range, max_range] are marked eligible.
4. Each configured level is scored on the eligible points and one row
   is appended to the scores file.
5. If enabled, eligible point distances are added to the range buckets
   and the ranges file is rewritten.

All state of a run (output files, range buckets, counters) lives on the
Evaluator instance.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Optional, Union

import numpy as np

from lidar_motion_evaluation.config_schema import (
    Config,
    EvaluationConfig,
    EvaluationLevel,
)
from lidar_motion_evaluation.frame import Frame
from lidar_motion_evaluation.ground_truth import GroundTruthHandler
from lidar_motion_evaluation.logging_utils import BaseExperimentLogger
from lidar_motion_evaluation.metrics import (
    ConfusionCounts,
    EvaluationSummary,
    count_confusion,
)
from lidar_motion_evaluation.ranges import RangeAccumulator
from lidar_motion_evaluation.timing import Timer, format_timings
from lidar_motion_evaluation.writer import RunWriter

logger = logging.getLogger(__name__)


class Evaluator:
    """
    Evaluation session of one run.

    Construction validates the evaluation settings, creates the run
    directory and writes the scores header. There is no explicit close;
    every file is complete after each frame.

    Args:
        config: Configuration object
        ground_truth_handler: Source of per-frame ground truth labels
        timing_source: Returns the timing snapshot written every frame
        experiment_logger: Optional tracker receiving per-frame metrics
    """

    def __init__(
        self,
        config: Config,
        ground_truth_handler: GroundTruthHandler,
        timing_source: Optional[Callable[[], str]] = None,
        experiment_logger: Optional[BaseExperimentLogger] = None,
    ):
        self.config = config
        # Re-validated so a config built without validation cannot start a run
        self.eval_config = EvaluationConfig.model_validate(
            config.evaluation.model_dump()
        )
        self.ground_truth_handler = ground_truth_handler
        self.timing_source = timing_source or format_timings
        self.experiment_logger = experiment_logger

        self.levels = self.eval_config.levels
        logger.info(
            f"Evaluating levels {[level.value for level in self.levels]} in range "
            f"[{self.eval_config.min_range}, {self.eval_config.max_range}]"
        )

        self.writer = RunWriter(
            self.eval_config.output_directory,
            [level.value for level in self.levels],
        )

        self.range_accumulator: Optional[RangeAccumulator] = None
        if self.eval_config.evaluate_ranges:
            self.range_accumulator = RangeAccumulator(
                self.eval_config.range_reference_level
            )

        self.summary_data = EvaluationSummary(
            levels={level.value: ConfusionCounts() for level in self.levels}
        )
        self._lock = threading.Lock()

    @property
    def run_directory(self):
        return self.writer.run_directory

    @property
    def frames_evaluated(self) -> int:
        return self.summary_data.frames_evaluated

    def evaluate_frame(self, frame: Frame) -> Optional[Dict[str, ConfusionCounts]]:
        """
        Evaluate one frame.

        Args:
            frame: Classified frame; labeled and range filtered in place

        Returns:
            Confusion counts per scored level, or None if the frame has
            no ground truth
        """
        with self._lock:
            self.write_timings()

            if not self.ground_truth_handler.label_if_available(frame):
                self.summary_data.frames_skipped += 1
                logger.debug(f"No ground truth for cloud with timestamp {frame.timestamp}")
                return None

            with Timer("evaluation/score_frame"):
                results = self._score_frame(frame)

            self.summary_data.frames_evaluated += 1
            logger.info(
                f"Evaluated cloud {self.summary_data.frames_evaluated} "
                f"with timestamp {frame.timestamp}."
            )

            if self.experiment_logger is not None:
                self.experiment_logger.log_metrics(
                    self._frame_metrics(results),
                    step=self.summary_data.frames_evaluated,
                )

            return results

    def _score_frame(self, frame: Frame) -> Dict[str, ConfusionCounts]:
        evaluated_points = self.filter_evaluated_points(frame)

        results: Dict[str, ConfusionCounts] = {}
        for level in self.levels:
            counts = self.evaluate_level(frame, level)
            if counts is not None:
                results[level.value] = counts

        self.writer.append_scores(
            frame.timestamp,
            list(results.values()),
            evaluated_points,
            len(frame),
        )

        for level, counts in results.items():
            self.summary_data.update(level, counts)
        self.summary_data.evaluated_points += evaluated_points
        self.summary_data.total_points += len(frame)

        if self.range_accumulator is not None:
            self.evaluate_ranges(frame)

        return results

    def filter_evaluated_points(self, frame: Frame) -> int:
        """
        Mark the points within the evaluation range as eligible.

        Both range bounds are inclusive.

        Args:
            frame: Frame whose eligible flags are set in place

        Returns:
            Number of eligible points
        """
        distances = frame.distance_to_sensor
        frame.eligible = (distances >= self.eval_config.min_range) & (
            distances <= self.eval_config.max_range
        )
        return int(np.count_nonzero(frame.eligible))

    def evaluate_level(
        self,
        frame: Frame,
        level: Union[str, EvaluationLevel],
    ) -> Optional[ConfusionCounts]:
        """
        Count true/false positives/negatives of one level on eligible points.

        Args:
            frame: Labeled and range filtered frame
            level: Level name ("point", "cluster" or "object")

        Returns:
            ConfusionCounts, or None if the level is unknown
        """
        try:
            level = EvaluationLevel(level)
        except ValueError:
            logger.error(f"Unknown evaluation level '{level}'!")
            return None

        if not frame.is_labeled:
            raise ValueError(f"Frame {frame.timestamp} has no ground truth labels")

        return count_confusion(
            frame.predicted_dynamic(level),
            frame.ground_truth_dynamic,
            mask=frame.eligible,
        )

    def evaluate_ranges(self, frame: Frame) -> None:
        """Add the frame to the range buckets and rewrite the ranges file."""
        if self.range_accumulator is None:
            raise RuntimeError("Range evaluation is disabled")

        self.range_accumulator.add_frame(frame)
        self.writer.write_ranges(self.range_accumulator.format())

    def write_timings(self) -> None:
        """Overwrite the timings file with the current timing snapshot."""
        self.writer.write_timings(self.timing_source())

    def summary(self) -> EvaluationSummary:
        """Cumulative results of all frames evaluated so far."""
        return self.summary_data

    def save_summary(self):
        """Write the cumulative results to the run's summary file."""
        return self.writer.write_summary(self.summary_data.to_dict())

    @staticmethod
    def _frame_metrics(results: Dict[str, ConfusionCounts]) -> Dict[str, float]:
        metrics = {}
        for level, counts in results.items():
            metrics[f"{level}_iou"] = counts.iou
            metrics[f"{level}_precision"] = counts.precision
            metrics[f"{level}_recall"] = counts.recall
        return metrics


__all__ = [
    "Evaluator",
]
