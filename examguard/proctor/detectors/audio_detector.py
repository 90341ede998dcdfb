"""
Audio Detector - Detects sustained background audio during exams

Features:
- Mean level of a byte frequency buffer (0-255 per bin)
- Consecutive-hit debounce before reporting
- PCM to byte-spectrum conversion for microphone captures
"""

import logging
import numpy as np
from typing import Any, Dict, Optional

from .base import PeriodicDetector, ReportCallback
from ..capabilities import AudioTrack
from ..infractions import InfractionType

logger = logging.getLogger(__name__)


MIN_DECIBELS = -100.0
MAX_DECIBELS = -30.0


def byte_frequency_data(
    samples: np.ndarray,
    fft_size: int = 256,
    min_db: float = MIN_DECIBELS,
    max_db: float = MAX_DECIBELS
) -> np.ndarray:
    """
    Convert the latest PCM samples into a byte frequency buffer.

    Blackman-windowed FFT over the last `fft_size` samples, magnitudes
    scaled to decibels and mapped linearly from [min_db, max_db] onto
    [0, 255]. Returns fft_size / 2 bins.

    Args:
        samples: Mono samples, int16 or float in [-1, 1]
        fft_size: Power of two, at least 256 for 128 bins
    """
    if fft_size < 256 or fft_size & (fft_size - 1):
        raise ValueError("fft_size must be a power of two >= 256")

    data = np.asarray(samples)
    if data.dtype == np.int16:
        data = data.astype(np.float64) / 32768.0
    else:
        data = data.astype(np.float64)

    if data.ndim > 1:
        data = data.mean(axis=1)

    block = np.zeros(fft_size)
    tail = data[-fft_size:]
    block[fft_size - len(tail):] = tail

    spectrum = np.fft.rfft(block * np.blackman(fft_size))[: fft_size // 2]
    magnitude = np.abs(spectrum) / fft_size
    with np.errstate(divide="ignore"):
        decibels = 20.0 * np.log10(magnitude)

    scaled = (decibels - min_db) * (255.0 / (max_db - min_db))
    return np.clip(np.nan_to_num(scaled, neginf=0.0), 0, 255).astype(np.uint8)


class AudioDetector(PeriodicDetector):
    """
    Reports AUDIO_DETECTED after `consecutive_hits` loud checks in a row.

    A check is loud when the mean of the frequency buffer exceeds the
    threshold. The streak resets after each report and on any quiet check.
    """

    name = "audio_detector"

    DEFAULT_INTERVAL = 1.0
    DEFAULT_THRESHOLD = 30.0  # mean bin level on the 0-255 scale
    DEFAULT_CONSECUTIVE_HITS = 3

    def __init__(
        self,
        audio: Optional[AudioTrack],
        report: ReportCallback,
        interval: float = DEFAULT_INTERVAL,
        threshold: float = DEFAULT_THRESHOLD,
        consecutive_hits: int = DEFAULT_CONSECUTIVE_HITS,
        identity: str = ""
    ):
        super().__init__(interval, report, identity)
        self.audio = audio
        self.threshold = threshold
        self.consecutive_hits = consecutive_hits

        self._consecutive_noise = 0
        self._total_samples = 0
        self._suspicious_samples = 0
        self.last_level = 0.0

    @staticmethod
    def level(frequency_data: np.ndarray) -> float:
        data = np.asarray(frequency_data, dtype=np.float64)
        if data.size == 0:
            raise ValueError("Empty frequency buffer")
        return float(data.mean())

    def observe(self, frequency_data: np.ndarray) -> Optional[str]:
        """Feed one buffer; returns details when AUDIO_DETECTED qualifies"""
        level = self.level(frequency_data)
        self.last_level = level
        self._total_samples += 1

        if level <= self.threshold:
            self._consecutive_noise = 0
            return None

        self._suspicious_samples += 1
        self._consecutive_noise += 1
        if self._consecutive_noise >= self.consecutive_hits:
            self._consecutive_noise = 0
            return f"Audio level: {level:.0f}"
        return None

    async def check(self):
        if self.audio is None:
            return
        details = self.observe(self.audio.read_frequency_data())
        if details:
            await self.report(InfractionType.AUDIO_DETECTED, details)

    def get_metrics(self) -> Dict[str, Any]:
        """Get accumulated audio metrics"""
        return {
            "total_samples": self._total_samples,
            "suspicious_samples": self._suspicious_samples,
            "suspicious_ratio": self._suspicious_samples / max(1, self._total_samples),
            "current_consecutive_suspicious": self._consecutive_noise,
            "last_level": self.last_level,
            "threshold": self.threshold
        }
