"""
Face Detector - coarse face presence and multiple-face heuristics

Both heuristics work on raw pixel statistics, not on a face model:

- Presence: fraction of skin-toned pixels in a square at the frame centre.
- Multiple faces: number of bright 50x50 grid cells. Several bright
  face-sized regions are taken as a proxy for more than one person in
  view. This is deliberately crude and will fire on bright backgrounds.
"""

import logging
import numpy as np
from typing import List, Optional, Tuple

from .base import PeriodicDetector, ReportCallback
from ..capabilities import VideoTrack
from ..infractions import InfractionType
from ..utils.frame_quality import check_frame_quality

logger = logging.getLogger(__name__)


def skin_mask(pixels: np.ndarray) -> np.ndarray:
    """
    Boolean mask of skin-like pixels.

    Rule: R>95, G>40, B>20, R>G, R>B and |R-G|>15.
    """
    rgb = pixels[..., :3].astype(np.int16)
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    return (
        (r > 95) & (g > 40) & (b > 20) &
        (r > g) & (r > b) &
        (np.abs(r - g) > 15)
    )


def center_region(frame: np.ndarray) -> np.ndarray:
    """Square of side min(width, height) / 4 centred on the frame"""
    height, width = frame.shape[:2]
    side = max(1, int(min(width, height) / 4))
    top = max(0, height // 2 - side // 2)
    left = max(0, width // 2 - side // 2)
    return frame[top:top + side, left:left + side]


def skin_ratio(frame: np.ndarray) -> float:
    """Fraction of skin-like pixels in the centre region"""
    region = center_region(frame)
    if region.size == 0:
        return 0.0
    return float(skin_mask(region).mean())


def bright_cell_count(frame: np.ndarray, cell_size: int = 50, brightness: float = 100.0) -> int:
    """Count grid cells whose mean luminance (R+G+B)/3 exceeds `brightness`"""
    luminance = frame[..., :3].astype(np.float32).mean(axis=2)
    height, width = luminance.shape
    count = 0
    for top in range(0, height, cell_size):
        for left in range(0, width, cell_size):
            cell = luminance[top:top + cell_size, left:left + cell_size]
            if cell.mean() > brightness:
                count += 1
    return count


class FaceDetector(PeriodicDetector):
    """
    Samples the camera every interval and runs both heuristics.

    NO_FACE needs `missing_frames` consecutive frames without a face; any
    frame with a face resets the streak. MULTIPLE_FACES fires on every
    qualifying frame.
    """

    name = "face_detector"

    DEFAULT_INTERVAL = 2.0
    DEFAULT_SKIN_RATIO = 0.10
    DEFAULT_MISSING_FRAMES = 3
    DEFAULT_CELL_SIZE = 50
    DEFAULT_BRIGHTNESS = 100.0
    DEFAULT_MAX_BRIGHT_CELLS = 3

    def __init__(
        self,
        video: Optional[VideoTrack],
        report: ReportCallback,
        interval: float = DEFAULT_INTERVAL,
        skin_ratio_threshold: float = DEFAULT_SKIN_RATIO,
        missing_frames: int = DEFAULT_MISSING_FRAMES,
        cell_size: int = DEFAULT_CELL_SIZE,
        brightness: float = DEFAULT_BRIGHTNESS,
        max_bright_cells: int = DEFAULT_MAX_BRIGHT_CELLS,
        identity: str = ""
    ):
        super().__init__(interval, report, identity)
        self.video = video
        self.skin_ratio_threshold = skin_ratio_threshold
        self.missing_frames = missing_frames
        self.cell_size = cell_size
        self.brightness = brightness
        self.max_bright_cells = max_bright_cells

        self.consecutive_no_face = 0

    def has_face(self, frame: np.ndarray) -> bool:
        return skin_ratio(frame) > self.skin_ratio_threshold

    def has_multiple_faces(self, frame: np.ndarray) -> bool:
        return bright_cell_count(frame, self.cell_size, self.brightness) > self.max_bright_cells

    def observe_presence(self, frame: np.ndarray) -> Optional[str]:
        """Advance the no-face streak; returns details when NO_FACE qualifies"""
        if self.has_face(frame):
            self.consecutive_no_face = 0
            return None

        self.consecutive_no_face += 1
        if self.consecutive_no_face >= self.missing_frames:
            self.consecutive_no_face = 0
            return "Face not visible in camera"
        return None

    def observe_multiple(self, frame: np.ndarray) -> Optional[str]:
        if self.has_multiple_faces(frame):
            return "Multiple faces detected"
        return None

    def observe(self, frame: np.ndarray) -> List[Tuple[InfractionType, str]]:
        """
        Run both heuristics on one frame.

        Raises:
            ValueError: frame is not a usable pixel buffer (detection noise)
        """
        quality = check_frame_quality(frame)
        if not quality["is_valid"]:
            raise ValueError(f"Unusable frame: {quality['issues']}")

        found = []
        details = self.observe_presence(frame)
        if details:
            found.append((InfractionType.NO_FACE, details))
        details = self.observe_multiple(frame)
        if details:
            found.append((InfractionType.MULTIPLE_FACES, details))
        return found

    async def check(self):
        if self.video is None:
            return
        frame = await self.video.grab_frame()
        if frame is None:
            return
        for infraction_type, details in self.observe(frame):
            await self.report(infraction_type, details)
