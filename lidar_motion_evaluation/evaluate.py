#!/usr/bin/env python3
"""
LiDAR Motion Detection Evaluation CLI

Replays recorded classified frames through the evaluator and writes the
scores, ranges, timings and summary of the run.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from tqdm import tqdm

from lidar_motion_evaluation.config import (
    add_config_args,
    config_from_args,
    validate_config,
)
from lidar_motion_evaluation.evaluator import Evaluator
from lidar_motion_evaluation.frame import list_frame_files, read_frame
from lidar_motion_evaluation.ground_truth import create_ground_truth_handler
from lidar_motion_evaluation.logging_utils import experiment_context, setup_logging
from lidar_motion_evaluation.timing import Timer

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the command-line argument parser."""
    parser = argparse.ArgumentParser(
        description="Evaluate LiDAR motion detection against ground truth",
    )

    add_config_args(parser)

    parser.add_argument(
        "frames",
        type=str,
        nargs="?",
        help="Directory of recorded classified frames (.npz)",
    )
    parser.add_argument(
        "-o", "--output",
        type=str,
        help="Output directory",
    )
    parser.add_argument(
        "-g", "--ground-truth",
        type=str,
        help="Ground truth JSON file (overrides config)",
    )
    parser.add_argument(
        "--no-ranges",
        action="store_true",
        help="Disable range accumulation",
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable the progress bar",
    )

    return parser


def main(args: Optional[argparse.Namespace] = None) -> int:
    """
    Main evaluation entry point.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code
    """
    if args is None:
        parser = create_parser()
        args = parser.parse_args()

    try:
        config = config_from_args(args)
    except Exception as e:
        print(f"Error loading configuration: {e}")
        return 1

    setup_logging(config)
    validate_config(config)

    frames_dir = getattr(args, "frames", None) or config.input.frame_directory
    if frames_dir is None:
        print("No frame directory specified")
        return 1

    try:
        frame_files = list_frame_files(frames_dir)
        handler = create_ground_truth_handler(config)
        if handler is None:
            print("No ground truth file specified")
            return 1

        with experiment_context(config) as exp_logger:
            exp_logger.log_params(config.to_dict())
            evaluator = Evaluator(config, handler, experiment_logger=exp_logger)

            for path in tqdm(
                frame_files,
                desc="Evaluating",
                unit="frame",
                disable=getattr(args, "no_progress", False),
            ):
                with Timer("evaluation/read_frame"):
                    frame = read_frame(path)
                evaluator.evaluate_frame(frame)

            summary_path = evaluator.save_summary()
            exp_logger.log_artifact(str(evaluator.run_directory))

        print(evaluator.summary().summary())
        print(f"Results written to {Path(summary_path).parent}")
        return 0

    except KeyboardInterrupt:
        logger.info("Evaluation interrupted by user")
        return 130
    except Exception as e:
        logger.exception(f"Evaluation failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
