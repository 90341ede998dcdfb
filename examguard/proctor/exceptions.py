"""Exceptions raised by the proctoring core"""


class ProctorError(Exception):
    """Base class for proctoring errors"""


class MissingIdentityError(ProctorError):
    """No identity is available, so monitoring cannot start"""


class CameraUnavailableError(ProctorError):
    """Camera or microphone could not be acquired"""


class CapabilityDenied(ProctorError):
    """A guarded host capability was invoked during an exam"""

    def __init__(self, capability: str, message: str = ""):
        self.capability = capability
        super().__init__(message or f"{capability} is not allowed during exams")


class LedgerStoreError(ProctorError):
    """The ledger backend could not be read or written"""


class UnknownMessageError(ProctorError):
    """An authority message carried an unsupported type"""
