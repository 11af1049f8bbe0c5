"""Pytest configuration and fixtures for evaluation tests."""

import logging

import numpy as np
import pytest

from lidar_motion_evaluation.config_schema import Config, EvaluationConfig
from lidar_motion_evaluation.frame import Frame
from lidar_motion_evaluation.ground_truth import IndexedGroundTruthHandler


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Remove handlers installed by setup_logging after each test."""
    yield
    package_logger = logging.getLogger("lidar_motion_evaluation")
    for handler in list(package_logger.handlers):
        handler.close()
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def make_config(tmp_path):
    """Factory for configs writing below a temporary output directory."""

    def factory(**evaluation) -> Config:
        evaluation.setdefault("output_directory", str(tmp_path / "run"))
        return Config(evaluation=EvaluationConfig(**evaluation))

    return factory


@pytest.fixture
def scenario_frame():
    """
    Frame with 10 points of which 6 lie in [1, 5].

    In range: 4 dynamic points detected as dynamic at point level and
    2 static points detected as static.
    """
    distances = np.array([0.5, 1.0, 2.0, 3.0, 4.0, 4.5, 5.0, 5.5, 7.0, 0.2])
    point_dynamic = np.array([1, 1, 1, 1, 1, 0, 0, 1, 0, 1], dtype=bool)
    return Frame(
        timestamp=1000,
        distance_to_sensor=distances,
        point_level_dynamic=point_dynamic,
    )


@pytest.fixture
def scenario_ground_truth():
    """Ground truth of scenario_frame: dynamic points by index."""
    return IndexedGroundTruthHandler({1000: [0, 1, 2, 3, 4, 7, 9]})
