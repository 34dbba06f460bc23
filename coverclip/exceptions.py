"""Errors raised by the upload pipeline and rendered as plain-text responses."""

from coverclip.models import MediaType


class CoverclipError(Exception):
    """Base class for errors that map to an HTTP status."""

    status_code = 500


class InputMissingError(CoverclipError):
    """Raised when a required upload field is absent from the request."""

    status_code = 400


class FileValidationError(CoverclipError):
    """Raised when an upload fails size, extension or signature checks."""

    status_code = 400

    def __init__(self, media_type: MediaType, reason: str):
        self.media_type = media_type
        self.reason = reason
        super().__init__(f"{media_type.value.capitalize()} validation failed: {reason}")


class EncodingError(CoverclipError):
    """Raised when the encoder reports a failure."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Error generating video: {reason}")
