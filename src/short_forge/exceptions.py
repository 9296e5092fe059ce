"""
Short Forge Exception Hierarchy

Structured exception types for the acquisition and assembly pipeline.
All exceptions inherit from ShortForgeError and carry an ErrorKind so the
job orchestrator can record a typed failure reason.

Usage:
    from short_forge.exceptions import AcquisitionError, EncodingError

    try:
        chain.resolve_metadata(video_id)
    except AcquisitionError as e:
        logger.error(f"Acquisition failed ({e.failure.value}): {e}")
"""

from enum import Enum
from typing import List, Optional, Union


class ErrorKind(Enum):
    """Terminal failure reasons recorded on a failed job."""
    INVALID_INPUT = "invalid_input"
    ACQUISITION_FAILED = "acquisition_failed"
    NO_CAPTIONS = "no_captions"
    PLANNING_UNUSABLE = "planning_unusable"
    ENCODING_FAILED = "encoding_failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    COLLABORATOR_FAILED = "collaborator_failed"
    UNKNOWN = "unknown"


class AcquisitionFailure(Enum):
    """Classified reason an upstream refused to serve a video."""
    BOT_DETECTION = "bot_detection"
    REGION_BLOCKED = "region_blocked"
    UNAVAILABLE = "unavailable"
    AGE_RESTRICTED = "age_restricted"
    UNKNOWN = "unknown"


class ShortForgeError(Exception):
    """Base exception for all Short Forge errors."""
    kind: ErrorKind = ErrorKind.UNKNOWN


# =============================================================================
# Input Errors
# =============================================================================

class InvalidInputError(ShortForgeError):
    """Unrecognized URL, empty narration, or a source too short to cut."""
    kind = ErrorKind.INVALID_INPUT


# =============================================================================
# Acquisition Errors
# =============================================================================

class AcquisitionError(ShortForgeError):
    """Every candidate endpoint failed."""
    kind = ErrorKind.ACQUISITION_FAILED

    def __init__(self, message: str, failure: AcquisitionFailure = AcquisitionFailure.UNKNOWN):
        super().__init__(message)
        self.failure = failure


class NoCaptionsError(ShortForgeError):
    """No usable caption track; the caller should transcribe instead."""
    kind = ErrorKind.NO_CAPTIONS


# =============================================================================
# Planning Errors
# =============================================================================

class PlanningUnusableError(ShortForgeError):
    """Planner output could not be used. Recovered by plan synthesis."""
    kind = ErrorKind.PLANNING_UNUSABLE


class CollaboratorError(ShortForgeError):
    """An external collaborator (planner, synthesizer, transcriber) raised."""
    kind = ErrorKind.COLLABORATOR_FAILED

    def __init__(self, message: str, collaborator: Optional[str] = None):
        super().__init__(message)
        self.collaborator = collaborator


# =============================================================================
# Assembly Errors
# =============================================================================

class EncodingError(ShortForgeError):
    """An ffmpeg/ffprobe step exited non-zero or produced no output."""
    kind = ErrorKind.ENCODING_FAILED

    def __init__(
        self,
        message: str,
        command: Optional[Union[str, List[str]]] = None,
        stderr: Optional[str] = None,
    ):
        super().__init__(message)
        if isinstance(command, list):
            command = " ".join(str(x) for x in command)
        self.command = command
        self.stderr = stderr


class MetadataExtractionError(EncodingError):
    """Error extracting duration/stream metadata via ffprobe."""
    pass


# =============================================================================
# Lifecycle Errors
# =============================================================================

class StageTimeoutError(ShortForgeError):
    """A stage exceeded its attempt or wall-clock budget."""
    kind = ErrorKind.TIMEOUT

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage


class JobCancelledError(ShortForgeError):
    """The job was cancelled between stages or during a subprocess."""
    kind = ErrorKind.CANCELLED
