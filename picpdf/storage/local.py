"""Local filesystem scratch storage for uploads and generated documents."""

from __future__ import annotations

import os
import re
import threading
import time
from pathlib import Path
from typing import Optional

import structlog

from picpdf.schemas.common import UploadedImage

logger = structlog.get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_MAX_BASE_LENGTH = 100
_DEFAULT_BASE = "image"


def sanitize_filename(filename: Optional[str]) -> tuple[str, str]:
    """Split an untrusted client filename into a safe ``(base, ext)`` pair.

    Only the last path segment is kept (``/`` and ``\\`` both count as
    separators). Every character outside ``[A-Za-z0-9_-]`` is replaced with
    ``_``, in the base and in the extension, which keeps its leading dot.
    Never raises.
    """
    name = (filename or "").replace("\\", "/").rsplit("/", 1)[-1]
    stem, ext = os.path.splitext(name)
    base = _UNSAFE_CHARS.sub("_", stem)[:_MAX_BASE_LENGTH] or _DEFAULT_BASE
    if ext:
        ext = "." + _UNSAFE_CHARS.sub("_", ext[1:])
    return base, ext


class UploadWriter:
    """Incremental writer for one accepted upload part.

    The file is created in exclusive mode, so two writers can never share a
    path. Chunks are appended as the multipart body arrives.
    """

    def __init__(self, path: Path, original_filename: str, content_type: str):
        self.path = path
        self.original_filename = original_filename
        self.content_type = content_type
        self.size_bytes = 0
        self._buffer = path.open("xb")

    def write(self, chunk: bytes) -> None:
        self._buffer.write(chunk)
        self.size_bytes += len(chunk)

    def close(self) -> UploadedImage:
        """Flush the file and describe the stored upload."""
        self._buffer.close()
        logger.info(
            "upload_persisted",
            filename=self.original_filename,
            stored_filename=self.path.name,
            size_bytes=self.size_bytes,
        )
        return UploadedImage(
            original_filename=self.original_filename,
            stored_filename=self.path.name,
            path=self.path,
            content_type=self.content_type,
            size_bytes=self.size_bytes,
        )

    def abort(self) -> None:
        """Close the handle of an unfinished part; the file is left for cleanup."""
        self._buffer.close()


class TransientStore:
    """Per-request scratch files under two injected directories.

    Upload names are ``{token}_{base}{ext}`` and output names are
    ``output_{token}.pdf``. Tokens come from :meth:`unique_token` and are
    never reused within the store's lifetime, so concurrent requests cannot
    collide even with identical client filenames.
    """

    def __init__(self, upload_dir: str | Path, generated_dir: str | Path):
        self.upload_dir = Path(upload_dir)
        self.generated_dir = Path(generated_dir)
        self._token_lock = threading.Lock()
        self._last_token = 0
        self.ensure_dirs()

    def ensure_dirs(self) -> None:
        """Create both scratch directories if absent."""
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.generated_dir.mkdir(parents=True, exist_ok=True)

    def unique_token(self) -> int:
        """Return a strictly increasing nanosecond timestamp."""
        with self._token_lock:
            token = max(time.time_ns(), self._last_token + 1)
            self._last_token = token
            return token

    # ---------------------------------------------------------------------------
    # File operations
    # ---------------------------------------------------------------------------

    def open_upload(self, filename: Optional[str], content_type: str) -> UploadWriter:
        """Create the on-disk file for one upload part and return its writer."""
        base, ext = sanitize_filename(filename)
        path = self.upload_dir / f"{self.unique_token()}_{base}{ext}"
        return UploadWriter(path, original_filename=filename or "", content_type=content_type)

    def allocate_output_path(self) -> Path:
        """Return a fresh path for a generated document."""
        return self.generated_dir / f"output_{self.unique_token()}.pdf"

    def release(self, path: str | Path) -> bool:
        """Best-effort delete; returns True if a file was removed.

        Deletion errors are logged, never raised.
        """
        try:
            Path(path).unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.warning("cleanup_failed", path=str(path), error=str(exc))
            return False
        return True
