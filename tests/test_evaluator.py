"""
Tests for the Frame Evaluator

Tests range filtering, level scoring, the scores/ranges/timings files,
and the run lifecycle.
"""

import csv
import logging
import re
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from lidar_motion_evaluation.config_schema import (
    Config,
    EvaluationConfig,
    EvaluationLevel,
)
from lidar_motion_evaluation.evaluator import Evaluator
from lidar_motion_evaluation.frame import Frame
from lidar_motion_evaluation.ground_truth import (
    GroundTruthHandler,
    IndexedGroundTruthHandler,
)
from lidar_motion_evaluation.logging_utils import MLflowLogger
from lidar_motion_evaluation.metrics import ConfusionCounts
from lidar_motion_evaluation.utils import load_json


def read_scores(evaluator):
    with open(evaluator.writer.scores_path, newline="") as f:
        return list(csv.reader(f))


def random_frame(timestamp, n_points=200, seed=0):
    rng = np.random.default_rng(seed)
    return Frame(
        timestamp=timestamp,
        distance_to_sensor=rng.uniform(0.0, 30.0, n_points),
        point_level_dynamic=rng.random(n_points) > 0.5,
        cluster_level_dynamic=rng.random(n_points) > 0.6,
        object_level_dynamic=rng.random(n_points) > 0.7,
    )


class TestScoresFile:
    """Tests for the scores written per frame."""

    def test_scenario_point_level_only(
        self, make_config, scenario_frame, scenario_ground_truth
    ):
        """Test the row of a frame with 6 of 10 points in range."""
        config = make_config(
            min_range=1.0,
            max_range=5.0,
            evaluate_point_level=True,
            evaluate_cluster_level=False,
            evaluate_object_level=False,
        )
        evaluator = Evaluator(config, scenario_ground_truth)

        results = evaluator.evaluate_frame(scenario_frame)

        assert results == {"point": ConfusionCounts(tp=4, fp=0, tn=2, fn=0)}

        header, row = read_scores(evaluator)
        assert header == [
            "timestamp",
            "point_IoU",
            "point_Precision",
            "point_Recall",
            "point_TP",
            "point_TN",
            "point_FP",
            "point_FN",
            "EvaluatedPoints",
            "TotalPoints",
        ]
        values = dict(zip(header, row))
        assert values["timestamp"] == "1000"
        assert float(values["point_IoU"]) == 1.0
        assert float(values["point_Precision"]) == 1.0
        assert float(values["point_Recall"]) == 1.0
        assert values["point_TP"] == "4"
        assert values["point_TN"] == "2"
        assert values["point_FP"] == "0"
        assert values["point_FN"] == "0"
        assert values["EvaluatedPoints"] == "6"
        assert values["TotalPoints"] == "10"

    def test_header_all_levels(self, make_config):
        """Test the header column order with all levels enabled."""
        evaluator = Evaluator(make_config(), IndexedGroundTruthHandler({}))

        header = read_scores(evaluator)[0]

        assert len(header) == 1 + 3 * 7 + 2
        assert header[1] == "point_IoU"
        assert header[8] == "cluster_IoU"
        assert header[15] == "object_IoU"
        assert header[-2:] == ["EvaluatedPoints", "TotalPoints"]

    def test_no_ground_truth_writes_header_only(self, make_config):
        """Test that frames without ground truth produce no rows."""
        evaluator = Evaluator(make_config(), IndexedGroundTruthHandler({}))

        for timestamp in range(5):
            assert evaluator.evaluate_frame(random_frame(timestamp)) is None

        assert len(read_scores(evaluator)) == 1
        assert evaluator.frames_evaluated == 0
        assert evaluator.summary().frames_skipped == 5

    def test_row_count_matches_labeled_frames(self, make_config):
        """Test one row per labeled frame regardless of skipped frames."""
        labeled = {0: [1, 2], 2: [], 3: [5], 7: [0]}
        evaluator = Evaluator(make_config(), IndexedGroundTruthHandler(labeled))

        for timestamp in range(10):
            evaluator.evaluate_frame(random_frame(timestamp, seed=timestamp))

        rows = read_scores(evaluator)[1:]
        assert len(rows) == len(labeled)
        assert [int(row[0]) for row in rows] == sorted(labeled)
        assert evaluator.frames_evaluated == len(labeled)

    def test_rows_are_appended(self, make_config):
        """Test that earlier rows are kept when later frames are scored."""
        handler = IndexedGroundTruthHandler({1: [0], 2: [1]})
        evaluator = Evaluator(make_config(), handler)

        evaluator.evaluate_frame(random_frame(1))
        first = read_scores(evaluator)

        evaluator.evaluate_frame(random_frame(2))
        second = read_scores(evaluator)

        assert second[: len(first)] == first
        assert len(second) == len(first) + 1

    def test_counts_sum_to_evaluated_points(self, make_config):
        """Test that each level's counts sum to the eligible point count."""
        handler = IndexedGroundTruthHandler({5: list(range(0, 200, 3))})
        evaluator = Evaluator(make_config(min_range=2.0, max_range=15.0), handler)

        results = evaluator.evaluate_frame(random_frame(5))

        header, row = read_scores(evaluator)
        evaluated_points = int(dict(zip(header, row))["EvaluatedPoints"])
        assert evaluated_points > 0
        for counts in results.values():
            assert counts.total == evaluated_points


class TestRangeFilter:
    """Tests for range filtering."""

    def test_bounds_are_inclusive(self, make_config):
        """Test points exactly at the bounds are eligible, outside are not."""
        evaluator = Evaluator(
            make_config(min_range=1.0, max_range=5.0),
            IndexedGroundTruthHandler({}),
        )
        frame = Frame(
            timestamp=0,
            distance_to_sensor=np.array([0.0, 1.0, 3.0, 5.0, 6.0]),
        )

        count = evaluator.filter_evaluated_points(frame)

        assert count == 3
        np.testing.assert_array_equal(
            frame.eligible, [False, True, True, True, False]
        )

    def test_filter_is_idempotent(self, make_config):
        """Test that filtering twice gives the same result."""
        evaluator = Evaluator(
            make_config(min_range=3.0, max_range=12.0),
            IndexedGroundTruthHandler({}),
        )
        frame = random_frame(0)

        first = evaluator.filter_evaluated_points(frame)
        eligible = frame.eligible.copy()
        second = evaluator.filter_evaluated_points(frame)

        assert first == second
        np.testing.assert_array_equal(frame.eligible, eligible)

    def test_ineligible_points_not_scored(self, make_config):
        """Test that points outside the range do not contribute."""
        frame = Frame(
            timestamp=3,
            distance_to_sensor=np.array([2.0, 50.0]),
            point_level_dynamic=np.array([True, True]),
        )
        handler = IndexedGroundTruthHandler({3: []})
        evaluator = Evaluator(make_config(max_range=10.0), handler)

        results = evaluator.evaluate_frame(frame)

        assert results["point"] == ConfusionCounts(tp=0, fp=1, tn=0, fn=0)


class TestLevelEvaluation:
    """Tests for scoring individual levels."""

    def test_levels_use_their_own_predictions(self, make_config):
        """Test that each level compares its own flags to ground truth."""
        frame = Frame(
            timestamp=9,
            distance_to_sensor=np.ones(4),
            point_level_dynamic=np.array([True, False, False, False]),
            cluster_level_dynamic=np.array([True, True, False, False]),
            object_level_dynamic=np.array([False, False, False, True]),
        )
        handler = IndexedGroundTruthHandler({9: [0]})
        evaluator = Evaluator(make_config(), handler)

        results = evaluator.evaluate_frame(frame)

        assert list(results) == ["point", "cluster", "object"]
        assert results["point"] == ConfusionCounts(tp=1, fp=0, tn=3, fn=0)
        assert results["cluster"] == ConfusionCounts(tp=1, fp=1, tn=2, fn=0)
        assert results["object"] == ConfusionCounts(tp=0, fp=1, tn=2, fn=1)

    def test_unknown_level_is_skipped(self, make_config, scenario_frame, caplog):
        """Test that an unknown level name is logged and skipped."""
        handler = IndexedGroundTruthHandler({1000: [1]})
        evaluator = Evaluator(make_config(), handler)
        handler.label_if_available(scenario_frame)
        evaluator.filter_evaluated_points(scenario_frame)

        with caplog.at_level(logging.ERROR):
            result = evaluator.evaluate_level(scenario_frame, "voxel")

        assert result is None
        assert "Unknown evaluation level 'voxel'" in caplog.text
        assert evaluator.evaluate_level(scenario_frame, "point") is not None
        assert evaluator.evaluate_level(scenario_frame, EvaluationLevel.OBJECT) is not None

    def test_unlabeled_frame_rejected(self, make_config, scenario_frame):
        """Test that scoring a frame without ground truth raises."""
        evaluator = Evaluator(make_config(), IndexedGroundTruthHandler({}))

        with pytest.raises(ValueError):
            evaluator.evaluate_level(scenario_frame, "point")


class TestRanges:
    """Tests for the ranges file."""

    def make_tp_frame(self, timestamp, distance):
        return Frame(
            timestamp=timestamp,
            distance_to_sensor=np.array([distance, 100.0]),
            cluster_level_dynamic=np.array([True, True]),
        )

    def test_tp_distances_accumulate_across_frames(self, make_config):
        """Test two frames with one TP point each."""
        handler = IndexedGroundTruthHandler({1: [0, 1], 2: [0, 1]})
        evaluator = Evaluator(
            make_config(max_range=20.0, evaluate_ranges=True), handler
        )

        evaluator.evaluate_frame(self.make_tp_frame(1, 2.5))
        evaluator.evaluate_frame(self.make_tp_frame(2, 3.75))

        lines = evaluator.writer.ranges_path.read_text().splitlines()
        assert lines == ["TP,2.5,3.75", "FP", "TN", "FN"]

    def test_buckets_are_distinct(self, make_config):
        """Test that FP, TN and FN are written from their own buckets."""
        frame = Frame(
            timestamp=4,
            distance_to_sensor=np.array([1.0, 2.0, 3.0, 4.0]),
            cluster_level_dynamic=np.array([True, True, False, False]),
        )
        handler = IndexedGroundTruthHandler({4: [0, 3]})
        evaluator = Evaluator(make_config(evaluate_ranges=True), handler)

        evaluator.evaluate_frame(frame)

        lines = evaluator.writer.ranges_path.read_text().splitlines()
        assert lines == ["TP,1.0", "FP,2.0", "TN,3.0", "FN,4.0"]

    def test_reference_level_is_configurable(self, make_config):
        """Test bucketing by a configured reference level."""
        frame = Frame(
            timestamp=4,
            distance_to_sensor=np.array([1.0, 2.0]),
            point_level_dynamic=np.array([True, False]),
            cluster_level_dynamic=np.array([False, True]),
        )
        handler = IndexedGroundTruthHandler({4: [0]})
        evaluator = Evaluator(
            make_config(evaluate_ranges=True, range_reference_level="point"),
            handler,
        )

        evaluator.evaluate_frame(frame)

        assert evaluator.range_accumulator.ranges["TP"] == [1.0]
        assert evaluator.range_accumulator.ranges["TN"] == [2.0]

    def test_no_ranges_file_when_disabled(self, make_config, scenario_frame):
        """Test that range tracking is off unless enabled."""
        handler = IndexedGroundTruthHandler({1000: []})
        evaluator = Evaluator(make_config(evaluate_ranges=False), handler)

        evaluator.evaluate_frame(scenario_frame)

        assert evaluator.range_accumulator is None
        assert not evaluator.writer.ranges_path.exists()

    def test_unlabeled_frames_do_not_touch_ranges(self, make_config):
        """Test that skipped frames add no distances."""
        handler = IndexedGroundTruthHandler({1: [0, 1]})
        evaluator = Evaluator(make_config(evaluate_ranges=True), handler)

        evaluator.evaluate_frame(self.make_tp_frame(1, 2.5))
        evaluator.evaluate_frame(self.make_tp_frame(99, 7.0))

        assert evaluator.range_accumulator.counts() == {
            "TP": 1, "FP": 0, "TN": 0, "FN": 0,
        }


class TestTimings:
    """Tests for the timings file."""

    def test_timings_written_every_frame(self, make_config):
        """Test that timings refresh for labeled and unlabeled frames."""
        timing_source = MagicMock(side_effect=["snapshot 1", "snapshot 2"])
        handler = IndexedGroundTruthHandler({1: []})
        evaluator = Evaluator(make_config(), handler, timing_source=timing_source)

        evaluator.evaluate_frame(random_frame(1))
        evaluator.evaluate_frame(random_frame(2))

        assert timing_source.call_count == 2
        assert evaluator.writer.timings_path.read_text() == "snapshot 2\n"

    def test_timings_written_before_labeling(self, make_config):
        """Test that the timings file exists when ground truth is queried."""
        evaluator = None

        class CheckingHandler(GroundTruthHandler):
            def label_if_available(self, frame):
                assert evaluator.writer.timings_path.exists()
                return False

        evaluator = Evaluator(make_config(), CheckingHandler())
        evaluator.evaluate_frame(random_frame(1))

    def test_default_timing_source(self, make_config):
        """Test that scoring time shows up in the default snapshot."""
        handler = IndexedGroundTruthHandler({1: [], 2: []})
        evaluator = Evaluator(make_config(), handler)

        evaluator.evaluate_frame(random_frame(1))
        evaluator.evaluate_frame(random_frame(2))

        assert "evaluation/score_frame" in evaluator.writer.timings_path.read_text()


class TestRunLifecycle:
    """Tests for run setup and summaries."""

    def test_invalid_range_rejected_before_setup(self, tmp_path):
        """Test that an unvalidated bad config cannot start a run."""
        output = tmp_path / "never_created"
        evaluation = EvaluationConfig.model_construct(
            output_directory=str(output),
            min_range=5.0,
            max_range=1.0,
            evaluate_point_level=True,
            evaluate_cluster_level=True,
            evaluate_object_level=True,
            evaluate_ranges=False,
            range_reference_level=EvaluationLevel.CLUSTER,
        )
        config = Config.model_construct(evaluation=evaluation)

        with pytest.raises(ValueError):
            Evaluator(config, IndexedGroundTruthHandler({}))

        assert not output.exists()

    def test_existing_output_directory_gets_timestamped_run(self, tmp_path):
        """Test that an existing output directory is not reused."""
        output = tmp_path / "results"
        output.mkdir()
        (output / "scores.csv").write_text("previous run\n")
        config = Config(evaluation=EvaluationConfig(output_directory=str(output)))

        evaluator = Evaluator(config, IndexedGroundTruthHandler({}))

        assert evaluator.run_directory.parent == output
        assert re.fullmatch(
            r"\d{4}_\d{2}_\d{2}-\d{2}_\d{2}_\d{2}", evaluator.run_directory.name
        )
        assert (output / "scores.csv").read_text() == "previous run\n"

    def test_new_output_directory_used_directly(self, tmp_path):
        """Test that a missing output directory is created and used."""
        output = tmp_path / "nested" / "results"
        config = Config(evaluation=EvaluationConfig(output_directory=str(output)))

        evaluator = Evaluator(config, IndexedGroundTruthHandler({}))

        assert evaluator.run_directory == output
        assert (output / "scores.csv").exists()

    def test_summary_accumulates(self, make_config):
        """Test cumulative counts across frames."""
        frame_a = Frame(
            timestamp=1,
            distance_to_sensor=np.array([1.0, 2.0]),
            point_level_dynamic=np.array([True, False]),
        )
        frame_b = Frame(
            timestamp=2,
            distance_to_sensor=np.array([1.0, 2.0, 3.0]),
            point_level_dynamic=np.array([True, True, False]),
        )
        handler = IndexedGroundTruthHandler({1: [0], 2: [2]})
        evaluator = Evaluator(
            make_config(evaluate_cluster_level=False, evaluate_object_level=False),
            handler,
        )

        evaluator.evaluate_frame(frame_a)
        evaluator.evaluate_frame(frame_b)
        evaluator.evaluate_frame(random_frame(3))

        summary = evaluator.summary()
        assert summary.levels["point"] == ConfusionCounts(tp=1, fp=2, tn=1, fn=1)
        assert summary.frames_evaluated == 2
        assert summary.frames_skipped == 1
        assert summary.evaluated_points == 5

        path = evaluator.save_summary()
        saved = load_json(path)
        assert saved["levels"]["point"]["fp"] == 2
        assert saved["statistics"]["total_points"] == 5

    def test_experiment_logger_receives_metrics(self, make_config, scenario_frame):
        """Test that per-frame metrics go to the experiment logger."""
        exp_logger = MagicMock()
        handler = IndexedGroundTruthHandler({1000: [1, 2]})
        evaluator = Evaluator(
            make_config(evaluate_object_level=False),
            handler,
            experiment_logger=exp_logger,
        )

        evaluator.evaluate_frame(scenario_frame)

        exp_logger.log_metrics.assert_called_once()
        metrics = exp_logger.log_metrics.call_args[0][0]
        assert set(metrics) == {
            "point_iou", "point_precision", "point_recall",
            "cluster_iou", "cluster_precision", "cluster_recall",
        }
        assert exp_logger.log_metrics.call_args[1]["step"] == 1

    def test_tracking_failure_keeps_run_going(self, make_config, scenario_frame):
        """Test that a failing MLflow backend does not abort evaluation."""
        mlflow = MagicMock()
        mlflow.log_metrics.side_effect = RuntimeError("tracking server down")
        config = make_config()
        config.logging.mlflow.enabled = True

        with patch.dict(sys.modules, {"mlflow": mlflow}):
            exp_logger = MLflowLogger(config)

        evaluator = Evaluator(
            config,
            IndexedGroundTruthHandler({1000: [1, 2]}),
            experiment_logger=exp_logger,
        )

        assert evaluator.evaluate_frame(scenario_frame) is not None
        assert evaluator.frames_evaluated == 1
        mlflow.log_metrics.assert_called_once()
        with open(evaluator.writer.scores_path) as f:
            assert len(f.read().splitlines()) == 2
