"""
Metrics Module for LiDAR Motion Detection Evaluation

Provides the binary dynamic/static classification metrics used to score
motion detection output against ground truth:

- Confusion counts (TP, FP, TN, FN)
- Precision, Recall and IoU (Intersection over Union)
- Run-level summaries of the cumulative counts per evaluation level

Zero denominators are scored as 1.0: nothing to detect and nothing
detected is a perfect result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import numpy as np

logger = logging.getLogger(__name__)

# Column suffixes of one level group in the scores file, in write order
LEVEL_COLUMNS = ["IoU", "Precision", "Recall", "TP", "TN", "FP", "FN"]


# =============================================================================
# Metric Functions
# =============================================================================

def compute_precision(tp: int, fp: int) -> float:
    """
    Compute precision TP / (TP + FP).

    Args:
        tp: Number of true positives
        fp: Number of false positives

    Returns:
        Precision, 1.0 if there are no predicted positives
    """
    if tp + fp == 0:
        return 1.0
    return float(tp) / float(tp + fp)


def compute_recall(tp: int, fn: int) -> float:
    """
    Compute recall TP / (TP + FN).

    Args:
        tp: Number of true positives
        fn: Number of false negatives

    Returns:
        Recall, 1.0 if there are no ground truth positives
    """
    if tp + fn == 0:
        return 1.0
    return float(tp) / float(tp + fn)


def compute_iou(tp: int, fp: int, fn: int) -> float:
    """
    Compute intersection over union TP / (TP + FP + FN).

    Args:
        tp: Number of true positives
        fp: Number of false positives
        fn: Number of false negatives

    Returns:
        IoU, 1.0 if the union is empty
    """
    if tp + fp + fn == 0:
        return 1.0
    return float(tp) / float(tp + fp + fn)


# =============================================================================
# Confusion Counts
# =============================================================================

@dataclass
class ConfusionCounts:
    """Binary confusion matrix of dynamic (positive) vs static (negative)."""

    tp: int = 0
    fp: int = 0
    tn: int = 0
    fn: int = 0

    @property
    def total(self) -> int:
        return self.tp + self.fp + self.tn + self.fn

    @property
    def precision(self) -> float:
        return compute_precision(self.tp, self.fp)

    @property
    def recall(self) -> float:
        return compute_recall(self.tp, self.fn)

    @property
    def iou(self) -> float:
        return compute_iou(self.tp, self.fp, self.fn)

    def __add__(self, other: "ConfusionCounts") -> "ConfusionCounts":
        return ConfusionCounts(
            tp=self.tp + other.tp,
            fp=self.fp + other.fp,
            tn=self.tn + other.tn,
            fn=self.fn + other.fn,
        )

    def to_row(self) -> List[Union[float, int]]:
        """Values in scores file order: IoU, Precision, Recall, TP, TN, FP, FN."""
        return [
            self.iou,
            self.precision,
            self.recall,
            self.tp,
            self.tn,
            self.fp,
            self.fn,
        ]

    def to_dict(self) -> Dict[str, Union[float, int]]:
        """Convert to dictionary for logging/saving."""
        return {
            "iou": self.iou,
            "precision": self.precision,
            "recall": self.recall,
            "tp": self.tp,
            "tn": self.tn,
            "fp": self.fp,
            "fn": self.fn,
        }


def count_confusion(
    predicted: np.ndarray,
    ground_truth: np.ndarray,
    mask: Optional[np.ndarray] = None,
) -> ConfusionCounts:
    """
    Count true/false positives/negatives of a dynamic classification.

    Args:
        predicted: (N,) predicted dynamic flags
        ground_truth: (N,) ground truth dynamic flags
        mask: Optional (N,) mask of points to include

    Returns:
        ConfusionCounts over the included points
    """
    predicted = np.asarray(predicted, dtype=bool)
    ground_truth = np.asarray(ground_truth, dtype=bool)

    if predicted.shape != ground_truth.shape:
        raise ValueError(
            f"Prediction shape {predicted.shape} does not match "
            f"ground truth shape {ground_truth.shape}"
        )

    if mask is not None:
        mask = np.asarray(mask, dtype=bool)
        predicted = predicted[mask]
        ground_truth = ground_truth[mask]

    return ConfusionCounts(
        tp=int(np.count_nonzero(predicted & ground_truth)),
        fp=int(np.count_nonzero(predicted & ~ground_truth)),
        tn=int(np.count_nonzero(~predicted & ~ground_truth)),
        fn=int(np.count_nonzero(~predicted & ground_truth)),
    )


def level_header(level: str) -> List[str]:
    """Scores file column names for one evaluation level."""
    return [f"{level}_{column}" for column in LEVEL_COLUMNS]


# =============================================================================
# Run Summary
# =============================================================================

@dataclass
class EvaluationSummary:
    """Cumulative evaluation result of a run."""

    levels: Dict[str, ConfusionCounts] = field(default_factory=dict)

    # Metadata
    frames_evaluated: int = 0
    frames_skipped: int = 0
    evaluated_points: int = 0
    total_points: int = 0

    def update(self, level: str, counts: ConfusionCounts) -> None:
        """Add the counts of one frame to the level's running total."""
        self.levels[level] = self.levels.get(level, ConfusionCounts()) + counts

    def summary(self) -> str:
        """Generate human-readable summary."""
        lines = [
            "=" * 60,
            "MOTION DETECTION EVALUATION",
            "=" * 60,
        ]

        for level, counts in self.levels.items():
            lines.extend([
                "",
                f"{level.capitalize()} level:",
                f"  IoU:               {counts.iou:.4f}",
                f"  Precision:         {counts.precision:.4f}",
                f"  Recall:            {counts.recall:.4f}",
                f"  TP / FP:           {counts.tp:,} / {counts.fp:,}",
                f"  TN / FN:           {counts.tn:,} / {counts.fn:,}",
            ])

        lines.extend([
            "",
            "Statistics:",
            f"  Evaluated frames:  {self.frames_evaluated}",
            f"  Skipped frames:    {self.frames_skipped}",
            f"  Evaluated points:  {self.evaluated_points:,}",
            f"  Total points:      {self.total_points:,}",
            "=" * 60,
        ])

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/saving."""
        return {
            "levels": {
                level: counts.to_dict() for level, counts in self.levels.items()
            },
            "statistics": {
                "frames_evaluated": self.frames_evaluated,
                "frames_skipped": self.frames_skipped,
                "evaluated_points": self.evaluated_points,
                "total_points": self.total_points,
            },
        }


__all__ = [
    "LEVEL_COLUMNS",
    "compute_precision",
    "compute_recall",
    "compute_iou",
    "ConfusionCounts",
    "count_confusion",
    "level_header",
    "EvaluationSummary",
]
