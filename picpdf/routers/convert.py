"""Router: POST /api/convert — turn an ordered batch of images into one PDF."""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, Request

from picpdf.config import Settings
from picpdf.schemas.common import ConversionRequest
from picpdf.schemas.responses import ErrorResponse
from picpdf.services.cleanup import CleanupCoordinator
from picpdf.services.document_streamer import PDF_MEDIA_TYPE, DocumentResponse, render_document
from picpdf.services.ingestion import ImageStreamParser
from picpdf.services.page_synthesizer import resolve_geometry
from picpdf.services.validation import IngestionValidator
from picpdf.storage.local import TransientStore

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["convert"])


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> TransientStore:
    return request.app.state.store


async def _accept_images(
    request: Request,
    conversion: ConversionRequest,
    cleanup: CleanupCoordinator,
    store: TransientStore,
    settings: Settings,
) -> None:
    """Validate and persist each file part as the body streams in.

    Every accepted part is on disk and tracked for cleanup before the next
    part is inspected.
    """
    validator = IngestionValidator(settings)
    parser = ImageStreamParser(request.headers, request.stream(), validator, store, cleanup)
    conversion.images.extend(await parser.parse())
    validator.check_not_empty(conversion.images)


@router.post(
    "/convert",
    response_class=DocumentResponse,
    responses={
        200: {"content": {PDF_MEDIA_TYPE: {}}, "description": "The generated PDF"},
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def convert_images(
    request: Request,
    settings: Settings = Depends(get_settings),
    store: TransientStore = Depends(get_store),
):
    """Convert the uploaded images into a single PDF, one A4 page per image.

    Page order is exactly the order of the ``images`` parts in the form.
    All scratch files of the request are removed once the response resolves.
    """
    conversion = ConversionRequest(request_id=uuid.uuid4().hex)
    structlog.contextvars.bind_contextvars(request_id=conversion.request_id)

    try:
        with CleanupCoordinator(store, conversion.request_id) as cleanup:
            await _accept_images(request, conversion, cleanup, store, settings)
            logger.info("images_accepted", count=len(conversion.images))

            output_path = cleanup.track(store.allocate_output_path())
            document = await render_document(
                conversion.images,
                output_path,
                resolve_geometry(settings.page_size),
            )
            response = DocumentResponse(document, cleanup.handoff(), settings.output_filename)
    finally:
        structlog.contextvars.unbind_contextvars("request_id")

    return response
