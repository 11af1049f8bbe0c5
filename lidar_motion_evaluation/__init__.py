"""
LiDAR Motion Detection Evaluation

Scores classified point cloud frames against ground truth at point,
cluster and object level, and keeps crash-tolerant per-run records of
the scores, the sensor distances per confusion bucket, and timings.
"""

__version__ = "1.0.0"
__author__ = "LiDAR Motion Detection Team"

from lidar_motion_evaluation.config import (
    Config,
    load_config,
    validate_config,
)
from lidar_motion_evaluation.config_schema import (
    EvaluationConfig,
    EvaluationLevel,
)
from lidar_motion_evaluation.evaluator import Evaluator
from lidar_motion_evaluation.frame import (
    Frame,
    PointInfo,
    read_frame,
    save_frame,
)
from lidar_motion_evaluation.ground_truth import (
    GroundTruthHandler,
    IndexedGroundTruthHandler,
    JsonGroundTruthHandler,
    create_ground_truth_handler,
)
from lidar_motion_evaluation.logging_utils import (
    setup_logging,
    MLflowLogger,
)
from lidar_motion_evaluation.metrics import (
    ConfusionCounts,
    EvaluationSummary,
    compute_iou,
    compute_precision,
    compute_recall,
)
from lidar_motion_evaluation.ranges import RangeAccumulator
from lidar_motion_evaluation.writer import RunWriter

__all__ = [
    # Config
    "Config",
    "EvaluationConfig",
    "EvaluationLevel",
    "load_config",
    "validate_config",
    # Frames
    "Frame",
    "PointInfo",
    "read_frame",
    "save_frame",
    # Ground truth
    "GroundTruthHandler",
    "IndexedGroundTruthHandler",
    "JsonGroundTruthHandler",
    "create_ground_truth_handler",
    # Logging
    "setup_logging",
    "MLflowLogger",
    # Metrics
    "ConfusionCounts",
    "EvaluationSummary",
    "compute_iou",
    "compute_precision",
    "compute_recall",
    # Evaluation
    "Evaluator",
    "RangeAccumulator",
    "RunWriter",
]
