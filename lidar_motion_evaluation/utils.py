"""
Utility Functions for LiDAR Motion Detection Evaluation

Provides common file I/O utilities.
"""

from __future__ import annotations

import json
import logging
import math
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Union

import numpy as np

logger = logging.getLogger(__name__)


# ==============================================================================
# File I/O Utilities
# ==============================================================================

def ensure_dir(path: Union[str, Path]) -> Path:
    """
    Ensure directory exists, creating if necessary.

    Args:
        path: Directory path

    Returns:
        Path object
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def atomic_write(path: Union[str, Path], content: Union[str, bytes]) -> None:
    """
    Write file atomically using temporary file and rename.

    Args:
        path: Target file path
        content: Content to write
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    mode = "wb" if isinstance(content, bytes) else "w"

    with tempfile.NamedTemporaryFile(
        mode=mode,
        dir=path.parent,
        prefix=f".{path.name}.",
        delete=False,
    ) as tmp:
        tmp.write(content)
        tmp_path = tmp.name

    try:
        shutil.move(tmp_path, path)
    except OSError:
        Path(tmp_path).unlink(missing_ok=True)
        raise


def load_json(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load JSON file.

    Args:
        path: JSON file path

    Returns:
        Parsed JSON data
    """
    with open(path, "r") as f:
        return json.load(f)


def sanitize_for_json(obj: Any) -> Any:
    """Recursively sanitize an object for JSON serialization.

    Converts NaN/Inf to None and numpy types to Python types.
    """
    if isinstance(obj, dict):
        return {k: sanitize_for_json(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [sanitize_for_json(v) for v in obj]
    elif isinstance(obj, np.ndarray):
        return sanitize_for_json(obj.tolist())
    elif isinstance(obj, (bool, np.bool_)):
        return bool(obj)
    elif isinstance(obj, (int, np.integer)):
        return int(obj)
    elif isinstance(obj, (np.floating, float)):
        if math.isnan(obj) or math.isinf(obj):
            return None
        return float(obj)
    elif isinstance(obj, (str, type(None))):
        return obj
    else:
        return str(obj)


def save_json(
    data: Any,
    path: Union[str, Path],
    indent: int = 2,
) -> None:
    """
    Save data to JSON file atomically.

    Args:
        data: Data to save
        path: Output path
        indent: Indentation level
    """
    atomic_write(path, json.dumps(sanitize_for_json(data), indent=indent))
