"""
Configuration Loader for LiDAR Motion Detection Evaluation

Provides utilities to load, validate, and merge configurations from
YAML files, environment variables, and CLI arguments.
"""

from __future__ import annotations

import argparse
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from lidar_motion_evaluation.config_schema import Config

logger = logging.getLogger(__name__)

# Default config locations to search
DEFAULT_CONFIG_PATHS = [
    Path("config.yaml"),
    Path("lidar_motion_evaluation/config.yaml"),
    Path.home() / ".config" / "lidar_motion_evaluation" / "config.yaml",
]


def _resolve_env_vars(value: Any) -> Any:
    """
    Recursively resolve environment variables in config values.

    Supports ${ENV_VAR} and ${ENV_VAR:-default} syntax.
    """
    if isinstance(value, str):
        pattern = r"\$\{([^}:]+)(?::-([^}]*))?\}"

        def replacer(match):
            var_name = match.group(1)
            default = match.group(2) or ""
            return os.environ.get(var_name, default)

        return re.sub(pattern, replacer, value)
    elif isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries, with override taking precedence.

    Args:
        base: Base dictionary
        override: Override dictionary (takes precedence)

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        path: Path to YAML file

    Returns:
        Dictionary of configuration values

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    data = _resolve_env_vars(data)

    logger.debug(f"Loaded configuration from {path}")
    return data


def find_config_file(
    explicit_path: Optional[Union[str, Path]] = None,
    search_paths: Optional[List[Path]] = None,
) -> Optional[Path]:
    """
    Find a configuration file by searching default locations.

    Args:
        explicit_path: Explicitly specified config path
        search_paths: Additional paths to search

    Returns:
        Path to config file, or None if not found
    """
    if explicit_path:
        path = Path(explicit_path)
        if path.exists():
            return path
        raise FileNotFoundError(f"Specified config file not found: {path}")

    paths_to_check = list(search_paths or []) + DEFAULT_CONFIG_PATHS

    for path in paths_to_check:
        if path.exists():
            logger.info(f"Found configuration at {path}")
            return path

    return None


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Config:
    """
    Load and validate configuration from a YAML file.

    Args:
        config_path: Path to config file (searches default locations if None)
        overrides: Dictionary of values to override

    Returns:
        Validated Config object

    Raises:
        FileNotFoundError: If an explicit config file is missing
        pydantic.ValidationError: If config is invalid
    """
    path = find_config_file(config_path)

    if path:
        config_data = load_yaml(path)
    else:
        logger.warning("No config file found, using defaults")
        config_data = {}

    if overrides:
        config_data = _deep_merge(config_data, overrides)

    config = Config(**config_data)

    logger.info(
        f"Configuration loaded: levels="
        f"{[level.value for level in config.evaluation.levels]}, "
        f"range=[{config.evaluation.min_range}, {config.evaluation.max_range}]"
    )

    return config


def validate_config(config: Config) -> List[str]:
    """
    Perform additional validation beyond schema validation.

    Args:
        config: Configuration to validate

    Returns:
        List of warning messages (empty if all good)
    """
    warnings = []

    evaluation = config.evaluation

    if not evaluation.levels:
        warnings.append(
            "No evaluation level enabled. Scores will only contain point counts."
        )

    if evaluation.evaluate_ranges and evaluation.range_reference_level not in evaluation.levels:
        warnings.append(
            f"Range buckets use the '{evaluation.range_reference_level.value}' level, "
            "which is not scored."
        )

    if config.ground_truth.file_path is None:
        warnings.append(
            "No ground truth file specified. No frame can be scored."
        )
    elif not Path(config.ground_truth.file_path).exists():
        warnings.append(
            f"Ground truth file not found: {config.ground_truth.file_path}"
        )

    for warning in warnings:
        logger.warning(warning)

    return warnings


def create_default_config() -> Dict[str, Any]:
    """
    Create a default configuration dictionary.

    Returns:
        Default configuration as dictionary
    """
    return Config().model_dump(mode="json")


def save_config(config: Config, path: Union[str, Path]) -> None:
    """
    Save configuration to a YAML file.

    Args:
        config: Configuration to save
        path: Output file path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        yaml.dump(
            config.model_dump(mode="json"),
            f,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )

    logger.info(f"Configuration saved to {path}")


def config_from_args(args: argparse.Namespace) -> Config:
    """
    Create configuration from parsed command-line arguments.

    Args:
        args: Parsed argparse namespace

    Returns:
        Config object
    """
    overrides: Dict[str, Any] = {}

    def set_override(section: str, key: str, value: Any) -> None:
        overrides.setdefault(section, {})[key] = value

    if getattr(args, "output", None):
        set_override("evaluation", "output_directory", args.output)

    if getattr(args, "min_range", None) is not None:
        set_override("evaluation", "min_range", args.min_range)

    if getattr(args, "max_range", None) is not None:
        set_override("evaluation", "max_range", args.max_range)

    if getattr(args, "no_ranges", False):
        set_override("evaluation", "evaluate_ranges", False)

    if getattr(args, "ground_truth", None):
        set_override("ground_truth", "file_path", args.ground_truth)

    if getattr(args, "debug", False):
        set_override("env", "debug", True)
        set_override("logging", "level", "DEBUG")

    return load_config(
        config_path=getattr(args, "config", None),
        overrides=overrides,
    )


def add_config_args(parser: argparse.ArgumentParser) -> argparse.ArgumentParser:
    """
    Add standard configuration arguments to an argument parser.

    Args:
        parser: ArgumentParser to add arguments to

    Returns:
        Modified parser
    """
    parser.add_argument(
        "--config", "-c",
        type=str,
        help="Path to YAML configuration file"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode"
    )
    parser.add_argument(
        "--min-range",
        type=float,
        help="Override minimum evaluated sensor distance"
    )
    parser.add_argument(
        "--max-range",
        type=float,
        help="Override maximum evaluated sensor distance"
    )

    return parser


# Convenience exports
__all__ = [
    "Config",
    "load_config",
    "validate_config",
    "save_config",
    "config_from_args",
    "add_config_args",
    "create_default_config",
]
