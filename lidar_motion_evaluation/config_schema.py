"""
Configuration Schema for LiDAR Motion Detection Evaluation

Uses Pydantic for robust validation and type checking.
Range bounds and the output directory are validated when the
configuration is built, before any frame is evaluated.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import (
    BaseModel,
    Field,
    field_validator,
    model_validator,
)


class EvaluationLevel(str, Enum):
    """Granularities at which motion detection is scored."""
    POINT = "point"
    CLUSTER = "cluster"
    OBJECT = "object"


# ==============================================================================
# Environment Configuration
# ==============================================================================

class EnvConfig(BaseModel):
    """Environment configuration settings."""

    debug: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging"
    )


# ==============================================================================
# Evaluation Configuration
# ==============================================================================

class EvaluationConfig(BaseModel):
    """Per-frame evaluation settings."""

    output_directory: str = Field(
        default="./evaluation",
        description="Run output directory (a timestamped subdirectory is used if it exists)"
    )
    min_range: float = Field(
        default=0.0,
        ge=0,
        description="Minimum sensor distance of evaluated points in meters"
    )
    max_range: float = Field(
        default=20.0,
        description="Maximum sensor distance of evaluated points in meters"
    )
    evaluate_point_level: bool = Field(
        default=True,
        description="Score the point level classification"
    )
    evaluate_cluster_level: bool = Field(
        default=True,
        description="Score the cluster level classification"
    )
    evaluate_object_level: bool = Field(
        default=True,
        description="Score the object level classification"
    )
    evaluate_ranges: bool = Field(
        default=False,
        description="Accumulate sensor distances per confusion bucket"
    )
    range_reference_level: EvaluationLevel = Field(
        default=EvaluationLevel.CLUSTER,
        description="Level whose prediction assigns points to range buckets"
    )

    model_config = {
        "validate_assignment": True,
        "extra": "forbid",
    }

    @field_validator("output_directory")
    @classmethod
    def validate_output_directory(cls, v: str) -> str:
        """Reject an empty output directory."""
        if not v or not v.strip():
            raise ValueError("'output_directory' must be set.")
        return v

    @model_validator(mode="after")
    def validate_range_bounds(self) -> "EvaluationConfig":
        """Require a non-empty evaluation band."""
        if self.max_range <= self.min_range:
            raise ValueError("'max_range' must be larger than 'min_range'.")
        return self

    @property
    def levels(self) -> List[EvaluationLevel]:
        """Enabled levels in fixed order: point, cluster, object."""
        levels = []
        if self.evaluate_point_level:
            levels.append(EvaluationLevel.POINT)
        if self.evaluate_cluster_level:
            levels.append(EvaluationLevel.CLUSTER)
        if self.evaluate_object_level:
            levels.append(EvaluationLevel.OBJECT)
        return levels


# ==============================================================================
# Ground Truth Configuration
# ==============================================================================

class GroundTruthConfig(BaseModel):
    """Ground truth source configuration."""

    file_path: Optional[str] = Field(
        default=None,
        description="JSON file mapping frame timestamps to dynamic point indices"
    )


# ==============================================================================
# Input Configuration
# ==============================================================================

class InputConfig(BaseModel):
    """Recorded frames replayed by the command-line evaluator."""

    frame_directory: Optional[str] = Field(
        default=None,
        description="Directory of recorded classified frames (.npz)"
    )


# ==============================================================================
# Logging Configuration
# ==============================================================================

class MLflowConfig(BaseModel):
    """MLflow logging configuration."""

    enabled: bool = Field(
        default=False,
        description="Enable MLflow tracking"
    )
    tracking_uri: Optional[str] = Field(
        default=None,
        description="MLflow tracking URI (file:// path or server URL)"
    )
    experiment_name: str = Field(
        default="LidarMotionDetection_Evaluation",
        description="MLflow experiment name"
    )
    run_name: Optional[str] = Field(
        default=None,
        description="MLflow run name (auto-generated if None)"
    )
    log_artifacts: bool = Field(
        default=True,
        description="Log run output files to MLflow"
    )


class LoggingConfig(BaseModel):
    """Complete logging configuration."""

    level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR"
    )
    log_to_file: bool = Field(
        default=False,
        description="Also log to file"
    )
    log_dir: str = Field(
        default="./logs",
        description="Directory for log files"
    )
    mlflow: MLflowConfig = Field(
        default_factory=MLflowConfig,
        description="MLflow configuration"
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Normalize and check the logging level name."""
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown logging level: {v}")
        return v


# ==============================================================================
# Main Configuration
# ==============================================================================

class Config(BaseModel):
    """
    Main configuration for LiDAR motion detection evaluation.

    Drives the evaluator, its inputs and logging.
    """

    env: EnvConfig = Field(
        default_factory=EnvConfig,
        description="Environment settings"
    )
    evaluation: EvaluationConfig = Field(
        default_factory=EvaluationConfig,
        description="Evaluation settings"
    )
    ground_truth: GroundTruthConfig = Field(
        default_factory=GroundTruthConfig,
        description="Ground truth settings"
    )
    input: InputConfig = Field(
        default_factory=InputConfig,
        description="Input frame settings"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging and experiment tracking"
    )

    model_config = {
        "populate_by_name": True,
        "validate_assignment": True,
        "extra": "forbid",
    }

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return self.model_dump(mode="json")
