"""Ingestion validation: field, count, content type and size checks per part."""

from __future__ import annotations

from typing import Optional, Sequence

from picpdf.config import Settings
from picpdf.errors import (
    NoFilesProvided,
    PayloadTooLarge,
    TooManyFiles,
    UnexpectedField,
    UnsupportedMediaType,
)


def normalize_content_type(content_type: Optional[str]) -> str:
    """Lower-case a declared content type and drop any parameters."""
    return (content_type or "").split(";", 1)[0].strip().lower()


class IngestionValidator:
    """Checks applied to each multipart part before it is persisted.

    Parts are checked one at a time as they are consumed, so a rejection late
    in the batch happens after earlier parts were already written; callers
    must clean those up.
    """

    def __init__(self, settings: Settings):
        self.field = settings.upload_field
        self.max_files = settings.max_files
        self.max_file_size = settings.max_file_size
        self.max_file_size_mb = settings.max_file_size_mb
        self.allowed_content_types = {normalize_content_type(ct) for ct in settings.allowed_content_types}

    def check_field(self, name: str) -> None:
        if name != self.field:
            raise UnexpectedField(name)

    def check_count(self, count: int) -> None:
        """Reject once the running part count exceeds the limit."""
        if count > self.max_files:
            raise TooManyFiles(self.max_files)

    def check_content_type(self, content_type: Optional[str]) -> None:
        if normalize_content_type(content_type) not in self.allowed_content_types:
            raise UnsupportedMediaType(content_type)

    def check_size(self, size_bytes: int, filename: Optional[str] = None) -> None:
        """Reject a part once the bytes received for it pass the limit."""
        if size_bytes > self.max_file_size:
            raise PayloadTooLarge(self.max_file_size_mb, filename=filename)

    def check_not_empty(self, images: Sequence) -> None:
        if not images:
            raise NoFilesProvided()
