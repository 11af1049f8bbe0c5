"""
Run Output Writer for LiDAR Motion Detection Evaluation

Owns the files of one evaluation run:

- scores.csv: append-only, one row per scored frame
- ranges.csv: rewritten after every scored frame
- timings.txt: rewritten after every frame
- summary.json: written on request at the end of a run

Rewritten files go through a temporary file and a rename, so an
interrupted write leaves the previous version in place. Rows are appended
with the file opened and closed per frame, so a crash loses at most the
row in flight.
"""

from __future__ import annotations

import csv
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from lidar_motion_evaluation.metrics import ConfusionCounts, level_header
from lidar_motion_evaluation.utils import atomic_write, ensure_dir, save_json

logger = logging.getLogger(__name__)

SCORES_FILE_NAME = "scores.csv"
RANGES_FILE_NAME = "ranges.csv"
TIMINGS_FILE_NAME = "timings.txt"
SUMMARY_FILE_NAME = "summary.json"

RUN_DIRECTORY_FORMAT = "%Y_%m_%d-%H_%M_%S"


def resolve_run_directory(
    output_directory: Union[str, Path],
    now: Optional[datetime] = None,
) -> Path:
    """
    Choose the directory of a new run.

    If the configured directory already exists, a time-stamped
    subdirectory is used instead so earlier runs are not overwritten.
    Runs started within the same second get a numeric suffix
    (`_1`, `_2`, ...). The check is not atomic.

    Args:
        output_directory: Configured output directory
        now: Time used for the subdirectory name (defaults to now)

    Returns:
        Run directory path (not yet created)
    """
    output_directory = Path(output_directory)
    if output_directory.exists():
        now = now or datetime.now()
        name = now.strftime(RUN_DIRECTORY_FORMAT)
        run_directory = output_directory / name
        suffix = 0
        while run_directory.exists():
            suffix += 1
            run_directory = output_directory / f"{name}_{suffix}"
        return run_directory
    return output_directory


def scores_header(levels: Sequence[str]) -> List[str]:
    """Column names of the scores file for the given level order."""
    header = ["timestamp"]
    for level in levels:
        header.extend(level_header(level))
    header.extend(["EvaluatedPoints", "TotalPoints"])
    return header


class RunWriter:
    """
    Writer for the output files of a single evaluation run.

    Creating the writer creates the run directory and writes the scores
    header, truncating any existing scores file in that directory.

    Args:
        output_directory: Configured output directory
        levels: Names of the scored levels, in column order
    """

    def __init__(self, output_directory: Union[str, Path], levels: Sequence[str]):
        self.levels = list(levels)
        self.run_directory = ensure_dir(resolve_run_directory(output_directory))
        logger.info(f"Writing evaluation to '{self.run_directory}'")

        with open(self.scores_path, "w", newline="") as f:
            csv.writer(f, lineterminator="\n").writerow(scores_header(self.levels))

    @property
    def scores_path(self) -> Path:
        return self.run_directory / SCORES_FILE_NAME

    @property
    def ranges_path(self) -> Path:
        return self.run_directory / RANGES_FILE_NAME

    @property
    def timings_path(self) -> Path:
        return self.run_directory / TIMINGS_FILE_NAME

    @property
    def summary_path(self) -> Path:
        return self.run_directory / SUMMARY_FILE_NAME

    def append_scores(
        self,
        timestamp: int,
        level_counts: Sequence[ConfusionCounts],
        evaluated_points: int,
        total_points: int,
    ) -> None:
        """
        Append the row of one scored frame.

        Args:
            timestamp: Frame timestamp
            level_counts: Confusion counts of each scored level, in column order
            evaluated_points: Number of points within the evaluation range
            total_points: Number of points in the frame
        """
        row: List[Any] = [timestamp]
        for counts in level_counts:
            row.extend(counts.to_row())
        row.extend([evaluated_points, total_points])

        with open(self.scores_path, "a", newline="") as f:
            csv.writer(f, lineterminator="\n").writerow(row)

    def write_ranges(self, content: str) -> None:
        """Replace the ranges file with the full accumulated dump."""
        atomic_write(self.ranges_path, content)

    def write_timings(self, content: str) -> None:
        """Replace the timings file with the current timing snapshot."""
        atomic_write(self.timings_path, content.rstrip("\n") + "\n")

    def write_summary(self, summary: Dict[str, Any]) -> Path:
        """Save the run summary as JSON."""
        save_json(summary, self.summary_path)
        logger.info(f"Saved evaluation summary to {self.summary_path}")
        return self.summary_path


__all__ = [
    "SCORES_FILE_NAME",
    "RANGES_FILE_NAME",
    "TIMINGS_FILE_NAME",
    "SUMMARY_FILE_NAME",
    "resolve_run_directory",
    "scores_header",
    "RunWriter",
]
