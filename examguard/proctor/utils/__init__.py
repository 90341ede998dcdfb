"""Utility modules"""

from .frame_quality import check_frame_quality
from .logging import log_proctor_event

__all__ = ["check_frame_quality", "log_proctor_event"]
