"""
Ground Truth Handling for LiDAR Motion Detection Evaluation

A ground truth handler decides whether labels exist for a frame and, if
so, annotates every point of the frame as dynamic or static.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional, Union

import numpy as np

from lidar_motion_evaluation.config_schema import Config, GroundTruthConfig
from lidar_motion_evaluation.frame import Frame
from lidar_motion_evaluation.utils import load_json

logger = logging.getLogger(__name__)


class GroundTruthHandler(ABC):
    """Base class for ground truth sources."""

    @abstractmethod
    def label_if_available(self, frame: Frame) -> bool:
        """
        Label the frame if ground truth exists for it.

        Args:
            frame: Frame to label; ground_truth_dynamic is set on success

        Returns:
            True if the frame was labeled
        """


class IndexedGroundTruthHandler(GroundTruthHandler):
    """
    Ground truth given as the indices of dynamic points per timestamp.

    Points not listed for a labeled timestamp are static.

    Args:
        dynamic_indices: Mapping of frame timestamp to dynamic point indices
    """

    def __init__(self, dynamic_indices: Mapping[int, Iterable[int]]):
        self.dynamic_indices: Dict[int, np.ndarray] = {
            int(timestamp): np.asarray(list(indices), dtype=np.int64)
            for timestamp, indices in dynamic_indices.items()
        }
        logger.info(f"Ground truth available for {len(self.dynamic_indices)} frames")

    def __len__(self) -> int:
        return len(self.dynamic_indices)

    def label_if_available(self, frame: Frame) -> bool:
        indices = self.dynamic_indices.get(int(frame.timestamp))
        if indices is None:
            return False

        n_points = len(frame)
        if len(indices) and (indices.min() < 0 or indices.max() >= n_points):
            raise ValueError(
                f"Ground truth of frame {frame.timestamp} references points "
                f"outside of the frame ({n_points} points)"
            )

        labels = np.zeros(n_points, dtype=bool)
        labels[indices] = True
        frame.ground_truth_dynamic = labels
        return True


class JsonGroundTruthHandler(IndexedGroundTruthHandler):
    """
    Ground truth read from a JSON file.

    The file maps timestamps (as strings) to lists of dynamic point indices:
    {"1617000000100": [3, 4, 17], "1617000000200": []}

    Args:
        path: Path to the JSON label file
    """

    def __init__(self, path: Union[str, Path]):
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Ground truth file not found: {path}")

        data = load_json(path)
        if not isinstance(data, dict):
            raise ValueError(f"Ground truth file must contain a JSON object: {path}")

        self.path = path
        logger.info(f"Loading ground truth from {path}")
        super().__init__({int(timestamp): indices for timestamp, indices in data.items()})


def create_ground_truth_handler(
    config: Union[Config, GroundTruthConfig],
) -> Optional[GroundTruthHandler]:
    """
    Create the ground truth handler described by the configuration.

    Args:
        config: Full config or its ground truth section

    Returns:
        Handler, or None if no ground truth source is configured
    """
    if isinstance(config, Config):
        config = config.ground_truth

    if config.file_path is None:
        return None

    return JsonGroundTruthHandler(config.file_path)


__all__ = [
    "GroundTruthHandler",
    "IndexedGroundTruthHandler",
    "JsonGroundTruthHandler",
    "create_ground_truth_handler",
]
