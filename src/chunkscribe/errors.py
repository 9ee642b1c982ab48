from __future__ import annotations


class ChunkscribeError(Exception):
    """Base exception for transcription job failures."""


class InvalidSourceError(ChunkscribeError):
    """Raised when the submitted audio cannot be used as a job source."""


class UploadRejectedError(InvalidSourceError):
    """Raised when an upload is empty or exceeds the configured size bound."""

    def __init__(self, message: str, *, too_large: bool = False) -> None:
        super().__init__(message)
        self.too_large = too_large


class MediaReadError(InvalidSourceError):
    """Raised when ffprobe cannot read the source or report its duration."""


class ExtractionError(ChunkscribeError):
    """Raised when ffmpeg fails to cut one segment out of the source."""


class TranscriptionError(ChunkscribeError):
    """Raised when the speech-to-text provider call fails for one unit."""


class SessionError(ChunkscribeError):
    """Base exception for session store failures."""


class SessionNotFoundError(SessionError):
    """Raised when a session id is unknown or has been reaped."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class DuplicateSessionError(SessionError):
    """Raised when a session id is registered twice."""


class InvalidTransitionError(SessionError):
    """Raised when a mutation violates the job state machine."""
