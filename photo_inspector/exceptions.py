"""
Custom exception hierarchy for the photo inspector.

Path and argument problems surface to the caller as error strings; decode
anomalies (truncation, malformed directories, missing metadata) are absorbed
by the metadata pipeline and degrade to partial results.
"""


class PhotoInspectorError(Exception):
    """Base exception for all photo inspector errors."""
    pass


class InvalidPathError(PhotoInspectorError):
    """Raised when a file or directory does not exist or is the wrong kind."""
    pass


class PermissionDeniedError(InvalidPathError):
    """Raised when a path exists but cannot be read."""
    pass


class UnsupportedFormatError(PhotoInspectorError):
    """Raised when a file's signature matches no supported image container."""
    pass


class NoMetadataFoundError(PhotoInspectorError):
    """Raised when a recognized container carries no EXIF block."""
    pass


class TruncatedDataError(PhotoInspectorError):
    """Raised when a read runs past the end of the buffer."""
    pass


class MalformedDirectoryError(PhotoInspectorError):
    """Raised when an IFD offset is cyclic, out of bounds or over the cap."""
    pass


class InvalidThresholdError(PhotoInspectorError):
    """Raised when the minimum score is not a finite, non-negative number."""
    pass


class ScoringError(PhotoInspectorError):
    """Raised when a scorer is missing, cannot be loaded, or returns garbage."""
    pass
