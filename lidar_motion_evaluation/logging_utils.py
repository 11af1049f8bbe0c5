"""
Logging and Experiment Tracking Module

Provides unified logging interface for MLflow and standard Python logging.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from lidar_motion_evaluation.config_schema import Config

# Configure root logger
logger = logging.getLogger("lidar_motion_evaluation")


def setup_logging(
    config: Config,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Setup logging based on configuration.

    Args:
        config: Configuration object
        log_file: Optional path to log file

    Returns:
        Configured logger
    """
    level_name = "DEBUG" if config.env.debug else config.logging.level
    log_level = getattr(logging, level_name.upper(), logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logger.setLevel(log_level)
    logger.handlers = []  # Clear existing handlers

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if config.logging.log_to_file or log_file:
        if log_file is None:
            log_dir = Path(config.logging.log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            log_file = log_dir / f"motion_evaluation_{timestamp}.log"

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
        logger.info(f"Logging to file: {log_file}")

    return logger


class BaseExperimentLogger:
    """Base class for experiment loggers."""

    def __init__(self, config: Config):
        self.config = config
        self.step = 0

    def log_params(self, params: Dict[str, Any]) -> None:
        """Log hyperparameters."""
        pass

    def log_metrics(
        self,
        metrics: Dict[str, float],
        step: Optional[int] = None,
    ) -> None:
        """Log metrics."""
        pass

    def log_artifact(self, path: str) -> None:
        """Log an artifact file or directory."""
        pass

    def start_run(self, run_name: Optional[str] = None) -> None:
        """Start a new run."""
        pass

    def end_run(self) -> None:
        """End the current run."""
        pass

    def __enter__(self):
        self.start_run()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_run()


class MLflowLogger(BaseExperimentLogger):
    """MLflow experiment logger."""

    def __init__(self, config: Config):
        super().__init__(config)
        self.mlflow = None
        self.run = None
        self._setup()

    @property
    def enabled(self) -> bool:
        return self.config.logging.mlflow.enabled and self.mlflow is not None

    def _setup(self) -> None:
        """Initialize MLflow."""
        if not self.config.logging.mlflow.enabled:
            return

        try:
            import mlflow
        except ImportError:
            logger.warning("MLflow not available. Install with: pip install mlflow")
            return

        self.mlflow = mlflow

        tracking_uri = self.config.logging.mlflow.tracking_uri
        if tracking_uri:
            mlflow.set_tracking_uri(tracking_uri)
            logger.info(f"MLflow tracking URI: {tracking_uri}")

        experiment_name = self.config.logging.mlflow.experiment_name
        mlflow.set_experiment(experiment_name)
        logger.info(f"MLflow experiment: {experiment_name}")

    def start_run(self, run_name: Optional[str] = None) -> None:
        """Start a new MLflow run."""
        if not self.enabled:
            return

        name = run_name or self.config.logging.mlflow.run_name
        if name is None:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            name = f"evaluation_{timestamp}"

        self.run = self.mlflow.start_run(run_name=name)
        logger.info(f"Started MLflow run: {name}")

    def end_run(self) -> None:
        """End the current MLflow run."""
        if self.run is not None and self.mlflow is not None:
            self.mlflow.end_run()
            self.run = None

    def log_params(self, params: Dict[str, Any]) -> None:
        """Log evaluation parameters to MLflow."""
        if not self.enabled:
            return

        flat_params = self._flatten_dict(params)

        # MLflow has a 500-char limit for param values
        for key, value in flat_params.items():
            try:
                str_value = str(value)
                if len(str_value) > 500:
                    str_value = str_value[:497] + "..."
                self.mlflow.log_param(key, str_value)
            except Exception as e:
                logger.warning(f"Failed to log param {key}: {e}")

    def log_metrics(
        self,
        metrics: Dict[str, float],
        step: Optional[int] = None,
    ) -> None:
        """Log metrics to MLflow."""
        if not self.enabled:
            return

        if step is None:
            step = self.step
            self.step += 1

        try:
            self.mlflow.log_metrics(
                {key: float(value) for key, value in metrics.items()},
                step=step,
            )
        except Exception as e:
            logger.warning(f"Failed to log metrics at step {step}: {e}")

    def log_artifact(self, path: str) -> None:
        """Log an artifact to MLflow."""
        if not self.enabled or not self.config.logging.mlflow.log_artifacts:
            return

        try:
            if os.path.isdir(path):
                self.mlflow.log_artifacts(path)
            else:
                self.mlflow.log_artifact(path)
            logger.debug(f"Logged artifact: {path}")
        except Exception as e:
            logger.warning(f"Failed to log artifact {path}: {e}")

    @staticmethod
    def _flatten_dict(
        d: Dict[str, Any],
        parent_key: str = "",
        sep: str = ".",
    ) -> Dict[str, Any]:
        """Flatten nested dictionary."""
        items = []
        for k, v in d.items():
            new_key = f"{parent_key}{sep}{k}" if parent_key else k
            if isinstance(v, dict):
                items.extend(
                    MLflowLogger._flatten_dict(v, new_key, sep=sep).items()
                )
            else:
                items.append((new_key, v))
        return dict(items)


def create_experiment_logger(config: Config) -> BaseExperimentLogger:
    """
    Create an experiment logger based on configuration.

    Args:
        config: Configuration object

    Returns:
        MLflow logger if enabled, otherwise a no-op logger
    """
    if config.logging.mlflow.enabled:
        return MLflowLogger(config)
    return BaseExperimentLogger(config)


@contextmanager
def experiment_context(config: Config, run_name: Optional[str] = None):
    """
    Context manager for experiment tracking.

    Args:
        config: Configuration object
        run_name: Optional run name

    Yields:
        Experiment logger
    """
    exp_logger = create_experiment_logger(config)
    exp_logger.start_run(run_name)
    try:
        yield exp_logger
    finally:
        exp_logger.end_run()


# Convenience exports
__all__ = [
    "setup_logging",
    "BaseExperimentLogger",
    "MLflowLogger",
    "create_experiment_logger",
    "experiment_context",
    "logger",
]
