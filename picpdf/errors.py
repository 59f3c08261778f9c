"""Error taxonomy for the conversion pipeline.

Every condition the pipeline can report to a caller is a ``PicPdfError``.
Client errors map to 400 and carry a stable, human-readable message; server
errors map to 500 and carry a generic message, with the underlying detail
kept for the server-side log only.
"""

from __future__ import annotations

from typing import Any, Optional


class PicPdfError(Exception):
    """Base exception for all picpdf errors.

    Attributes:
        message: Message returned to the caller as ``{"error": message}``
        error_code: Stable identifier used in logs
        http_status: HTTP status code to return
        details: Extra context for logging, never sent to the caller
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        http_status: int,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.http_status = http_status
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message}


class ClientError(PicPdfError):
    """Base for client input errors (400)."""

    def __init__(self, message: str, error_code: str, **kwargs):
        super().__init__(
            message=message,
            error_code=error_code,
            http_status=kwargs.pop("http_status", 400),
            **kwargs,
        )


class ServerError(PicPdfError):
    """Base for server-side failures (500)."""

    def __init__(self, message: str, error_code: str, **kwargs):
        super().__init__(
            message=message,
            error_code=error_code,
            http_status=kwargs.pop("http_status", 500),
            **kwargs,
        )


class NoFilesProvided(ClientError):
    def __init__(self):
        super().__init__(message="No images uploaded", error_code="NO_FILES_PROVIDED")


class UnsupportedMediaType(ClientError):
    """Raised when a part declares a content type outside the allow-list."""

    def __init__(self, content_type: Optional[str] = None):
        super().__init__(
            message="Only .jpg, .jpeg, .png files are allowed",
            error_code="UNSUPPORTED_MEDIA_TYPE",
            details={"content_type": content_type},
        )


class PayloadTooLarge(ClientError):
    """Raised when a single part exceeds the per-file size limit.

    Args:
        max_size_mb: Maximum allowed size in MB, named in the message
    """

    def __init__(self, max_size_mb: int, filename: Optional[str] = None):
        super().__init__(
            message=f"File too large. Max {max_size_mb}MB per file",
            error_code="PAYLOAD_TOO_LARGE",
            details={"max_size_mb": max_size_mb, "filename": filename},
        )


class TooManyFiles(ClientError):
    def __init__(self, max_files: int):
        super().__init__(
            message=f"Too many files. Max {max_files}",
            error_code="TOO_MANY_FILES",
            details={"max_files": max_files},
        )


class UnexpectedField(ClientError):
    def __init__(self, field: str):
        super().__init__(
            message="Unexpected file field",
            error_code="UNEXPECTED_FIELD",
            details={"field": field},
        )


class UploadError(ClientError):
    """Malformed multipart body that fits none of the specific conditions."""

    def __init__(self, detail: str):
        super().__init__(message="Upload error", error_code="UPLOAD_ERROR", details={"detail": detail})


class ConversionFailed(ServerError):
    """Raised when decoding, page synthesis or the document write fails.

    The whole request is aborted; no partial document is ever returned.
    """

    def __init__(self, message: str = "Server error during conversion", **details: Any):
        super().__init__(message=message, error_code="CONVERSION_FAILED", details=details)


class DocumentWriteFailed(ConversionFailed):
    def __init__(self, **details: Any):
        super().__init__("Failed to generate PDF", **details)
        self.error_code = "DOCUMENT_WRITE_FAILED"
