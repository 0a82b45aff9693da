class PipelineError(Exception):
    """Base class for failures inside a processing attempt."""

    retryable = True


class MalformedInputError(PipelineError):
    """Raised when the uploaded file is unreadable or has no video stream"""

    retryable = False


class ProbeError(MalformedInputError):
    """Raised when metadata extraction fails"""


class ThumbnailError(PipelineError):
    """Raised when a frame capture fails"""


class TranscodeError(PipelineError):
    """Raised when a rendition cannot be produced"""


class UploadError(PipelineError):
    """Raised when remote storage operations fail"""


class ToolTimeoutError(PipelineError):
    """Raised when an external tool exceeds its step timeout"""


class ToolUnavailableError(PipelineError):
    """Raised when an external tool cannot be started"""


class PersistenceError(PipelineError):
    """Raised when processing state cannot be written back"""


class VideoStateConflict(PipelineError):
    """Raised when the video row is gone or already terminal"""

    retryable = False


class InvalidJobError(ValueError):
    """Raised at enqueue time for malformed job submissions"""
