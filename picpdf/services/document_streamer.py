"""Document streamer — write, verify, then transfer the generated PDF."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import structlog
from pypdf import PdfReader
from pypdf.errors import PyPdfError
from reportlab.pdfgen.canvas import Canvas
from starlette.concurrency import run_in_threadpool
from starlette.responses import FileResponse
from starlette.types import Receive, Scope, Send

from picpdf.errors import ConversionFailed, DocumentWriteFailed, PicPdfError
from picpdf.schemas.common import GeneratedDocument, PageGeometry, UploadedImage
from picpdf.services.cleanup import CleanupCoordinator
from picpdf.services.page_synthesizer import synthesize_pages

logger = structlog.get_logger(__name__)

PDF_MEDIA_TYPE = "application/pdf"


def verify_document(path: Path, expected_pages: int) -> int:
    """Re-read a written PDF and confirm it holds *expected_pages* pages."""
    try:
        page_count = len(PdfReader(str(path)).pages)
    except (PyPdfError, OSError) as exc:
        raise DocumentWriteFailed(path=str(path), error=str(exc)) from exc

    if page_count != expected_pages:
        raise DocumentWriteFailed(path=str(path), expected=expected_pages, actual=page_count)
    return page_count


def write_document(
    images: Sequence[UploadedImage],
    output_path: Path,
    geometry: PageGeometry,
) -> GeneratedDocument:
    """Render *images* into a PDF at *output_path*, one page per image.

    Nothing is written to *output_path* unless every page was synthesized;
    the file is only created when the canvas is saved.

    Raises:
        ConversionFailed: If an image cannot be decoded or drawn.
        DocumentWriteFailed: If the PDF cannot be written or fails verification.
    """
    canvas = Canvas(str(output_path), pagesize=(geometry.width, geometry.height), pageCompression=1)
    canvas.setCreator("picpdf")

    try:
        page_count = synthesize_pages(canvas, images, geometry)
    except PicPdfError:
        raise
    except Exception as exc:
        logger.error("page_synthesis_failed", error=str(exc), exc_info=True)
        raise ConversionFailed(error=str(exc)) from exc

    try:
        canvas.save()
    except OSError as exc:
        logger.error("document_write_failed", path=str(output_path), error=str(exc))
        raise DocumentWriteFailed(path=str(output_path), error=str(exc)) from exc

    verify_document(output_path, page_count)
    size_bytes = output_path.stat().st_size

    logger.info(
        "document_written",
        path=str(output_path),
        pages=page_count,
        size_bytes=size_bytes,
    )
    return GeneratedDocument(
        path=output_path,
        page_count=page_count,
        geometry=geometry,
        size_bytes=size_bytes,
    )


async def render_document(
    images: Sequence[UploadedImage],
    output_path: Path,
    geometry: PageGeometry,
) -> GeneratedDocument:
    """Run :func:`write_document` off the event loop.

    Resolves only once the document is fully written and verified; the
    transfer stage must not start before then.
    """
    return await run_in_threadpool(write_document, images, output_path, geometry)


class DocumentResponse(FileResponse):
    """Attachment response that finishes the request's cleanup once sent.

    Cleanup runs whether the body was delivered or the send failed,
    including a client disconnect mid-transfer.
    """

    def __init__(self, document: GeneratedDocument, cleanup: CleanupCoordinator, filename: str):
        super().__init__(
            path=document.path,
            media_type=PDF_MEDIA_TYPE,
            filename=filename,
            content_disposition_type="attachment",
        )
        self.document = document
        self.cleanup = cleanup

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        success = False
        try:
            await super().__call__(scope, receive, send)
            success = True
        except Exception as exc:
            logger.error(
                "document_transfer_failed",
                request_id=self.cleanup.request_id,
                path=str(self.document.path),
                error=str(exc),
            )
            raise
        finally:
            self.cleanup.finish(success)
