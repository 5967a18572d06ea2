"""Custom exceptions for file compression operations.

All error messages are written in plain English so users know exactly
what went wrong and how to fix it.
"""

from typing import Optional


class FileCompressionError(Exception):
    """Base exception for all compression service errors."""

    error_type: str = "FileCompressionError"
    status_code: int = 400

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class UnsupportedInputError(FileCompressionError):
    """Uploaded file is neither an image nor a PDF.

    User-friendly message examples:
    - "'notes.docx' is not a supported file type. Upload an image or a PDF."
    """

    error_type: str = "UnsupportedInputError"
    status_code: int = 415

    @staticmethod
    def for_file(filename: str, mimetype: Optional[str] = None) -> "UnsupportedInputError":
        """Create error with simple message for a specific file."""
        name = filename or "This file"
        kind = f" ({mimetype})" if mimetype else ""
        return UnsupportedInputError(
            f"'{name}'{kind} is not a supported file type. "
            f"Please upload an image (JPEG, PNG, WebP) or a PDF."
        )


class InvalidTargetSizeError(FileCompressionError):
    """Target size was supplied but is not a positive number."""

    error_type: str = "InvalidTargetSizeError"
    status_code: int = 400

    @staticmethod
    def for_value(value: object) -> "InvalidTargetSizeError":
        return InvalidTargetSizeError(
            f"Target size must be a positive number of kilobytes (got '{value}')."
        )


class CompressionFailedError(FileCompressionError):
    """The encoder or renderer failed while processing the file.

    User-friendly message examples:
    - "'photo.jpg' could not be compressed. The file may be damaged."
    """

    error_type: str = "CompressionFailedError"
    status_code: int = 500

    @staticmethod
    def for_file(
        filename: str,
        detail: str = "",
        original_error: Optional[Exception] = None,
    ) -> "CompressionFailedError":
        """Create error with simple message for a specific file."""
        base_msg = f"'{filename or 'file'}' could not be compressed."
        if detail:
            return CompressionFailedError(f"{base_msg} Issue: {detail}", original_error)
        return CompressionFailedError(
            f"{base_msg} The file may be damaged. Please try a different copy.",
            original_error,
        )


class ArtifactNotFoundError(FileCompressionError):
    """Requested file was already downloaded, expired, or never existed."""

    error_type: str = "ArtifactNotFoundError"
    status_code: int = 404

    @staticmethod
    def for_id(artifact_id: str) -> "ArtifactNotFoundError":
        return ArtifactNotFoundError(
            f"File '{artifact_id}' not found or already deleted. "
            f"Compressed files can be downloaded once and expire after a few minutes."
        )


class ArchiveError(FileCompressionError):
    """Bundling several compressed files into one download failed."""

    error_type: str = "ArchiveError"
    status_code: int = 500
