"""
Local hardware providers

OpenCV webcam capture and a sounddevice microphone feeding the byte
frequency buffer the audio detector reads. Used when the session runs on
the candidate's own machine instead of behind a browser host.
"""

import asyncio
import logging
import threading
from collections import deque
from typing import Optional

import cv2
import numpy as np

from ..config import settings
from .capabilities import AudioTrack, CameraProvider, MediaStream, VideoTrack
from .detectors.audio_detector import byte_frequency_data
from .exceptions import CameraUnavailableError
from .utils.frame_quality import bgr_to_rgb

logger = logging.getLogger(__name__)


class OpenCVVideoTrack(VideoTrack):
    """Wraps a cv2.VideoCapture; a failed read marks the track ended"""

    def __init__(self, capture: cv2.VideoCapture):
        super().__init__()
        self.capture = capture
        self._ended = False

    def read_frame(self) -> Optional[np.ndarray]:
        if self._ended:
            return None
        ok, frame = self.capture.read()
        return self._decode(ok, frame)

    async def grab_frame(self) -> Optional[np.ndarray]:
        """Blocking device read runs on a worker thread, off the event loop"""
        if self._ended:
            return None
        ok, frame = await asyncio.to_thread(self.capture.read)
        if self._ended:
            return None
        return self._decode(ok, frame)

    def _decode(self, ok: bool, frame: Optional[np.ndarray]) -> Optional[np.ndarray]:
        if not ok or frame is None:
            self._ended = True
            self.emit("ended")
            return None
        return bgr_to_rgb(frame)

    def is_live(self) -> bool:
        return not self._ended and self.capture.isOpened()

    def stop(self):
        self._ended = True
        self.capture.release()


class SoundDeviceAudioTrack(AudioTrack):
    """Keeps the latest `fft_size` microphone samples in a ring buffer"""

    def __init__(self, sample_rate: int = 16000, fft_size: int = 256):
        import sounddevice as sd

        self.fft_size = fft_size
        self._samples = deque(maxlen=fft_size)
        self._lock = threading.Lock()
        self._stream = sd.InputStream(
            samplerate=sample_rate,
            channels=1,
            dtype="float32",
            callback=self._on_audio,
        )
        self._stream.start()

    def _on_audio(self, indata, frames, time_info, status):
        if status:
            logger.debug(f"Audio input status: {status}")
        with self._lock:
            self._samples.extend(indata[:, 0])

    def read_frequency_data(self) -> np.ndarray:
        with self._lock:
            samples = np.array(self._samples, dtype=np.float32)
        return byte_frequency_data(samples, self.fft_size)

    def close(self):
        self._stream.stop()
        self._stream.close()


class LocalCameraProvider(CameraProvider):
    """Opens the default webcam and, optionally, the default microphone"""

    def __init__(self, device_index: int = 0, with_audio: bool = True, fft_size: Optional[int] = None):
        self.device_index = device_index
        self.with_audio = with_audio
        self.fft_size = fft_size or settings.AUDIO_FFT_SIZE

    async def acquire(self) -> MediaStream:
        capture = await asyncio.to_thread(cv2.VideoCapture, self.device_index)
        if not capture.isOpened():
            capture.release()
            raise CameraUnavailableError(f"Camera {self.device_index} could not be opened")

        video = OpenCVVideoTrack(capture)
        audio = None
        if self.with_audio:
            try:
                audio = SoundDeviceAudioTrack(fft_size=self.fft_size)
            except Exception as e:
                video.stop()
                raise CameraUnavailableError(f"Microphone unavailable: {e}") from e

        logger.info(f"Local camera {self.device_index} opened")
        return MediaStream(video, audio)
