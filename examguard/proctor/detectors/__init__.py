"""Detector modules for proctoring"""

from .base import PeriodicDetector
from .face_detector import FaceDetector
from .audio_detector import AudioDetector, byte_frequency_data
from .motion_tracker import MotionTracker
from .screen_share import ScreenShareDetector, find_indicator
from .monitor_detector import MonitorDetector, MonitorCheck, evaluate_display
from .input_guard import InputGuard

__all__ = [
    "PeriodicDetector",
    "FaceDetector",
    "AudioDetector",
    "byte_frequency_data",
    "MotionTracker",
    "ScreenShareDetector",
    "find_indicator",
    "MonitorDetector",
    "MonitorCheck",
    "evaluate_display",
    "InputGuard",
]
