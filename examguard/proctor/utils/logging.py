"""
Proctoring Logger - Logs proctoring events and decisions
"""

import logging
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


def log_proctor_event(
    identity: str,
    event_type: str,
    details: Optional[Dict[str, Any]] = None,
    level: str = "info"
):
    """
    Log a proctoring event.

    Args:
        identity: Monitored identity
        event_type: Type of event (session_start, infraction, block, etc.)
        details: Optional event details
        level: Log level (debug, info, warning, error)
    """
    message = f"[PROCTOR] identity={identity} event={event_type}"

    if details:
        detail_str = " ".join(f"{k}={v}" for k, v in details.items())
        message += f" {detail_str}"

    if level == "debug":
        logger.debug(message)
    elif level == "warning":
        logger.warning(message)
    elif level == "error":
        logger.error(message)
    else:
        logger.info(message)


def log_session_start(identity: str, session_id: Optional[str] = None):
    """Log session start event"""
    log_proctor_event(
        identity=identity,
        event_type="session_start",
        details={"session_id": session_id or "local"}
    )


def log_session_end(identity: str, reason: str, infractions: int):
    """Log session end event"""
    log_proctor_event(
        identity=identity,
        event_type="session_end",
        details={"reason": reason, "infractions_reported": infractions}
    )


def log_infraction_recorded(identity: str, infraction_type: str, warnings: int, threshold: int):
    """Log an accepted infraction"""
    log_proctor_event(
        identity=identity,
        event_type="infraction",
        details={
            "type": infraction_type,
            "warnings": f"{warnings}/{threshold}"
        }
    )


def log_block(identity: str, reason: str, total_infractions: int):
    """Log a block transition"""
    log_proctor_event(
        identity=identity,
        event_type="blocked",
        details={"reason": reason, "total_infractions": total_infractions},
        level="warning"
    )


def log_unblock(identity: str):
    log_proctor_event(identity=identity, event_type="unblocked")


def log_detection_error(identity: str, detector: str, error: Exception):
    """Detection noise: logged, never an infraction"""
    log_proctor_event(
        identity=identity,
        event_type="detection_error",
        details={"detector": detector, "error": repr(error)},
        level="warning"
    )
