"""
Frame Quality Checker - Validates frame buffers before the face heuristics run
"""

import cv2
import numpy as np
import logging
from typing import Dict, Any, Optional, Tuple

logger = logging.getLogger(__name__)


def check_frame_quality(
    frame: Optional[np.ndarray],
    min_size: Tuple[int, int] = (4, 4)
) -> Dict[str, Any]:
    """
    Check that a frame is a usable RGB(A) pixel buffer.

    Args:
        frame: Pixel buffer of shape (height, width, 3 or 4)
        min_size: Minimum (width, height) dimensions

    Returns:
        Dict with:
            - is_valid: bool
            - issues: List of quality issues
            - dimensions: Tuple[int, int]
    """
    if frame is None or not isinstance(frame, np.ndarray) or frame.size == 0:
        return {"is_valid": False, "issues": ["empty_frame"], "dimensions": (0, 0)}

    issues = []

    if frame.ndim != 3 or frame.shape[2] not in (3, 4):
        return {"is_valid": False, "issues": ["bad_shape"], "dimensions": (0, 0)}

    height, width = frame.shape[:2]
    dimensions = (width, height)

    if width < min_size[0] or height < min_size[1]:
        issues.append("too_small")

    if not np.issubdtype(frame.dtype, np.integer):
        issues.append("bad_dtype")

    return {
        "is_valid": len(issues) == 0,
        "issues": issues,
        "dimensions": dimensions
    }


def bgr_to_rgb(frame: np.ndarray) -> np.ndarray:
    """Convert an OpenCV BGR capture into the RGB layout the heuristics expect"""
    return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
