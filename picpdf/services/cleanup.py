"""Cleanup coordinator — removes every per-request scratch file exactly once."""

from __future__ import annotations

from pathlib import Path

import structlog

from picpdf.schemas.common import CleanupState
from picpdf.storage.local import TransientStore

logger = structlog.get_logger(__name__)


class CleanupCoordinator:
    """Tracks the scratch files of one request and releases them once.

    State machine: ``PENDING -> (SUCCESS | FAILURE) -> CLEANED``.

    Used as a context manager around the request handler. An exception
    inside the block records FAILURE and cleans up immediately. A block
    that completes normally also cleans up, unless :meth:`handoff` was
    called to pass ownership to the response, which then calls
    :meth:`finish` once the transfer resolves.
    """

    def __init__(self, store: TransientStore, request_id: str):
        self.store = store
        self.request_id = request_id
        self.state = CleanupState.PENDING
        self._paths: list[Path] = []
        self._handed_off = False

    def __enter__(self) -> CleanupCoordinator:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None or not self._handed_off:
            self.fail()
            self.cleanup()
        return False

    def track(self, path: str | Path) -> Path:
        path = Path(path)
        if self.state == CleanupState.CLEANED:
            # Nothing will sweep it later, so release right away.
            self.store.release(path)
        else:
            self._paths.append(path)
        return path

    def succeed(self) -> None:
        if self.state == CleanupState.PENDING:
            self.state = CleanupState.SUCCESS

    def fail(self) -> None:
        if self.state == CleanupState.PENDING:
            self.state = CleanupState.FAILURE

    def handoff(self) -> CleanupCoordinator:
        """Transfer responsibility for cleanup to the response path."""
        self._handed_off = True
        return self

    def finish(self, success: bool) -> None:
        if success:
            self.succeed()
        else:
            self.fail()
        self.cleanup()

    def cleanup(self) -> int:
        """Release every tracked path; later calls are no-ops.

        Returns:
            Number of files actually removed by this call.
        """
        if self.state == CleanupState.CLEANED:
            return 0

        outcome = self.state
        paths, self._paths = self._paths, []
        self.state = CleanupState.CLEANED

        removed = sum(1 for path in paths if self.store.release(path))
        logger.info(
            "cleanup_complete",
            request_id=self.request_id,
            outcome=outcome.value,
            tracked=len(paths),
            removed=removed,
        )
        return removed
