"""Domain errors raised by services and translated to HTTP responses by routers."""

from fastapi import HTTPException


class ApiError(HTTPException):
    """HTTP error rendered as ``{"error": ..., "code": ...}``."""

    def __init__(self, status_code: int, error: str, code: str | None = None, headers: dict | None = None) -> None:
        super().__init__(status_code=status_code, detail=error, headers=headers)
        self.code = code


class CallcoachError(Exception):
    """Base class for domain errors."""


# --- Accounts ---
class EmailAlreadyRegistered(CallcoachError):
    pass


class InvalidCredentials(CallcoachError):
    pass


class AccountDisabled(CallcoachError):
    pass


# --- Upload validation ---
class UploadValidationError(CallcoachError, ValueError):
    """Upload rejected before any storage write."""


class InvalidFileType(UploadValidationError):
    pass


class FileTooLarge(UploadValidationError):
    pass


# --- Upstream / persistence ---
class UploadFailed(CallcoachError):
    """Storage write failed."""


class PersistenceFailed(CallcoachError):
    """Row create/update failed."""


class AnalysisFailed(CallcoachError):
    """Chat-completion call failed or is not configured."""


# --- Lookup / state ---
class TranscriptNotFound(CallcoachError, LookupError):
    pass


class TranscriptionAlreadyStarted(CallcoachError):
    pass


class InvalidStatusTransition(CallcoachError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move recording from '{current}' to '{target}'")
        self.current = current
        self.target = target


# --- Capture ---
class CaptureError(CallcoachError):
    """Microphone capture failure. ``user_message`` is safe to show."""

    user_message = "Could not start recording."


class PermissionDenied(CaptureError):
    user_message = "Microphone access was denied. Please check your permissions."


class DeviceNotFound(CaptureError):
    user_message = "No microphone was found. Please connect a recording device."


class DeviceBusy(CaptureError):
    user_message = "The microphone is already in use by another recording."


# --- Client ---
class ClientApiError(CallcoachError):
    """Non-2xx response seen by ``SalesCallClient``."""

    def __init__(self, status_code: int, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code
