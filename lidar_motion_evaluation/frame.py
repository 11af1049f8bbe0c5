"""
Frame Module for LiDAR Motion Detection Evaluation

Holds one classified point cloud acquisition. Per-point attributes are
stored as parallel numpy arrays; PointInfo offers a per-point view for
building frames by hand.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Union

import numpy as np

from lidar_motion_evaluation.config_schema import EvaluationLevel

logger = logging.getLogger(__name__)

# Frame attribute holding the prediction of each evaluation level
LEVEL_ATTRIBUTES = {
    EvaluationLevel.POINT: "point_level_dynamic",
    EvaluationLevel.CLUSTER: "cluster_level_dynamic",
    EvaluationLevel.OBJECT: "object_level_dynamic",
}

FRAME_FILE_SUFFIX = ".npz"


@dataclass
class PointInfo:
    """Classification state of a single sensor return."""

    distance_to_sensor: float
    point_level_dynamic: bool = False
    cluster_level_dynamic: bool = False
    object_level_dynamic: bool = False
    ground_truth_dynamic: Optional[bool] = None
    eligible: bool = False


@dataclass
class Frame:
    """Container for one classified point cloud and its labels."""

    timestamp: int
    distance_to_sensor: np.ndarray  # (N,) distance to the sensor in meters
    point_level_dynamic: Optional[np.ndarray] = None  # (N,) predictions
    cluster_level_dynamic: Optional[np.ndarray] = None  # (N,) predictions
    object_level_dynamic: Optional[np.ndarray] = None  # (N,) predictions
    ground_truth_dynamic: Optional[np.ndarray] = None  # (N,) set when labeled
    eligible: Optional[np.ndarray] = field(default=None)  # (N,) set by range filter

    def __post_init__(self):
        self.distance_to_sensor = np.asarray(self.distance_to_sensor, dtype=np.float64)
        n_points = len(self.distance_to_sensor)

        for attribute in LEVEL_ATTRIBUTES.values():
            values = getattr(self, attribute)
            if values is None:
                values = np.zeros(n_points, dtype=bool)
            setattr(self, attribute, self._as_flags(values, attribute))

        if self.ground_truth_dynamic is not None:
            self.ground_truth_dynamic = self._as_flags(
                self.ground_truth_dynamic, "ground_truth_dynamic"
            )

        if self.eligible is None:
            self.eligible = np.zeros(n_points, dtype=bool)
        else:
            self.eligible = self._as_flags(self.eligible, "eligible")

    def _as_flags(self, values, name: str) -> np.ndarray:
        flags = np.asarray(values, dtype=bool)
        if flags.shape != self.distance_to_sensor.shape:
            raise ValueError(
                f"'{name}' has shape {flags.shape}, expected "
                f"{self.distance_to_sensor.shape}"
            )
        return flags

    def __len__(self) -> int:
        return len(self.distance_to_sensor)

    @property
    def is_labeled(self) -> bool:
        return self.ground_truth_dynamic is not None

    def predicted_dynamic(self, level: EvaluationLevel) -> np.ndarray:
        """Predicted dynamic flags of the given evaluation level."""
        return getattr(self, LEVEL_ATTRIBUTES[level])

    def points(self) -> Iterator[PointInfo]:
        """Iterate over per-point records."""
        for i in range(len(self)):
            yield PointInfo(
                distance_to_sensor=float(self.distance_to_sensor[i]),
                point_level_dynamic=bool(self.point_level_dynamic[i]),
                cluster_level_dynamic=bool(self.cluster_level_dynamic[i]),
                object_level_dynamic=bool(self.object_level_dynamic[i]),
                ground_truth_dynamic=(
                    bool(self.ground_truth_dynamic[i]) if self.is_labeled else None
                ),
                eligible=bool(self.eligible[i]),
            )

    @classmethod
    def from_points(cls, timestamp: int, points: Sequence[PointInfo]) -> "Frame":
        """
        Build a frame from per-point records.

        Ground truth is kept only if every point carries a label.
        """
        labels = [p.ground_truth_dynamic for p in points]
        labeled = bool(points) and all(label is not None for label in labels)

        return cls(
            timestamp=timestamp,
            distance_to_sensor=np.array(
                [p.distance_to_sensor for p in points], dtype=np.float64
            ),
            point_level_dynamic=np.array([p.point_level_dynamic for p in points], dtype=bool),
            cluster_level_dynamic=np.array([p.cluster_level_dynamic for p in points], dtype=bool),
            object_level_dynamic=np.array([p.object_level_dynamic for p in points], dtype=bool),
            ground_truth_dynamic=np.array(labels, dtype=bool) if labeled else None,
            eligible=np.array([p.eligible for p in points], dtype=bool),
        )


# ==============================================================================
# Recorded Frames
# ==============================================================================

def save_frame(frame: Frame, path: Union[str, Path]) -> Path:
    """
    Save a classified frame to a compressed numpy archive.

    Ground truth and eligibility are not stored; they are evaluation state.

    Args:
        frame: Frame to save
        path: Output path (.npz)

    Returns:
        Path of the written file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    np.savez_compressed(
        path,
        timestamp=np.int64(frame.timestamp),
        distance_to_sensor=frame.distance_to_sensor,
        point_level_dynamic=frame.point_level_dynamic,
        cluster_level_dynamic=frame.cluster_level_dynamic,
        object_level_dynamic=frame.object_level_dynamic,
    )
    return path


def read_frame(path: Union[str, Path]) -> Frame:
    """
    Read a classified frame saved with save_frame.

    Args:
        path: Path to .npz file

    Returns:
        Unlabeled Frame
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Frame file not found: {path}")

    with np.load(path) as data:
        if "distance_to_sensor" not in data or "timestamp" not in data:
            raise ValueError(f"Not a frame file: {path}")

        def optional(key: str) -> Optional[np.ndarray]:
            return data[key] if key in data else None

        return Frame(
            timestamp=int(data["timestamp"]),
            distance_to_sensor=data["distance_to_sensor"],
            point_level_dynamic=optional("point_level_dynamic"),
            cluster_level_dynamic=optional("cluster_level_dynamic"),
            object_level_dynamic=optional("object_level_dynamic"),
        )


def list_frame_files(directory: Union[str, Path]) -> List[Path]:
    """
    List recorded frame files in a directory in timestamp order.

    Args:
        directory: Directory containing .npz frames

    Returns:
        Sorted list of frame paths
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"Frame directory not found: {directory}")

    files = sorted(directory.glob(f"*{FRAME_FILE_SUFFIX}"))

    def frame_timestamp(path: Path) -> int:
        with np.load(path) as data:
            return int(data["timestamp"])

    return sorted(files, key=frame_timestamp)
