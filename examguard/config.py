"""
examguard Configuration Settings

Every heuristic threshold, window size and interval used by the detectors
lives here so tuning never touches detector code. Intervals are seconds.
"""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Configuration for the proctoring service."""

    # API Settings
    APP_NAME: str = "examguard"
    DEBUG: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOG_DIR: str = "logs"

    # Escalation policy
    INFRACTION_THRESHOLD: int = 2  # block once warnings > threshold
    BLOCK_SNAPSHOT_EVENTS: int = 5
    EVENT_HISTORY_LIMIT: Optional[int] = None  # None keeps every event

    # Ledger persistence: "json", "redis" or "memory"
    LEDGER_BACKEND: str = "json"
    LEDGER_PATH: str = "data/ledger.json"
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_KEY_PREFIX: str = "examguard:"

    # Relay (external authority service); disabled when unset
    RELAY_URL: Optional[str] = None
    RELAY_TIMEOUT: float = 5.0
    RELAY_BUFFER_SIZE: int = 500
    HEARTBEAT_INTERVAL: float = 30.0

    # Warning display
    WARNING_MIN_INTERVAL: float = 1.0

    # Face presence / multiple faces
    FACE_CHECK_INTERVAL: float = 2.0
    FACE_SKIN_RATIO: float = 0.10
    FACE_MISSING_FRAMES: int = 3
    MULTI_FACE_CELL_SIZE: int = 50
    MULTI_FACE_BRIGHTNESS: float = 100.0
    MULTI_FACE_MAX_BRIGHT_CELLS: int = 3

    # Audio
    AUDIO_CHECK_INTERVAL: float = 1.0
    AUDIO_LEVEL_THRESHOLD: float = 30.0
    AUDIO_CONSECUTIVE_HITS: int = 3
    AUDIO_FFT_SIZE: int = 256

    # Pointer ("eye") motion
    EYE_CHECK_INTERVAL: float = 3.0
    EYE_WINDOW_SIZE: int = 50
    EYE_RECENT_SAMPLES: int = 20
    EYE_VELOCITY_THRESHOLD: float = 2.0  # units per millisecond
    EYE_RAPID_PAIRS: int = 10
    EYE_SUSPICIOUS_CYCLES: int = 2

    # Screen share / remote access
    SCREEN_SHARE_CHECK_INTERVAL: float = 3.0
    SCREEN_SHARE_TEXT_LIMIT: int = 5000

    # Multiple monitors
    MONITOR_CHECK_INTERVAL: float = 5.0
    MONITOR_ULTRAWIDE_RATIO: float = 2.5
    MONITOR_BOUNDS_MARGIN: int = 100
    MONITOR_MOVE_THRESHOLD: int = 100
    MONITOR_MOVE_SAMPLE_INTERVAL: float = 2.0

    # Camera
    CAMERA_RETRY_INTERVAL: float = 5.0
    CAMERA_LIVENESS_INTERVAL: float = 5.0

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
