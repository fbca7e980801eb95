"""Custom Exceptions for the segscribe application."""

class SegScribeError(Exception):
    """Base class for exceptions in this module."""
    pass

class ConfigurationError(SegScribeError):
    """Exception raised for invalid configuration or pipeline parameters."""
    pass

class FileSystemError(SegScribeError):
    """Exception raised for file system related errors (permissions, not found etc)."""
    pass

class ProbeError(SegScribeError):
    """Exception raised when the total duration of a source cannot be determined."""
    pass

class SegmentError(SegScribeError):
    """Exception raised when a segment cannot be cut from the source."""
    pass

class TranscriptionError(SegScribeError):
    """Exception raised when a segment cannot be transcribed."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

class CompletionError(SegScribeError):
    """Exception raised when a text completion request fails."""
    pass

class PipelineCancelledError(SegScribeError):
    """Exception raised when a caller cancels a pipeline run."""
    pass
