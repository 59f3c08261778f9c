"""Streaming multipart ingestion — validate and persist image parts as they arrive."""

from __future__ import annotations

from typing import AsyncIterator, Optional

import structlog
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.datastructures import Headers

from picpdf.errors import UploadError
from picpdf.schemas.common import UploadedImage
from picpdf.services.cleanup import CleanupCoordinator
from picpdf.services.validation import IngestionValidator
from picpdf.storage.local import TransientStore, UploadWriter

logger = structlog.get_logger(__name__)

# Events queued by the parser callbacks, handled after each chunk is fed in
_HEADERS = "headers"
_DATA = "data"
_END = "end"


class ImageStreamParser:
    """Consume a multipart body chunk by chunk.

    A file part is validated as soon as its headers are complete (field name,
    running count, content type) and its bytes go straight to the transient
    store, with the size cap checked on every chunk. A rejection therefore
    stops reading the body right away. Text parts are skipped.

    Every file opened in the store is tracked by *cleanup* before any byte is
    written to it.
    """

    def __init__(
        self,
        headers: Headers,
        stream: AsyncIterator[bytes],
        validator: IngestionValidator,
        store: TransientStore,
        cleanup: CleanupCoordinator,
    ):
        self.headers = headers
        self.stream = stream
        self.validator = validator
        self.store = store
        self.cleanup = cleanup
        self.images: list[UploadedImage] = []

        self._events: list[tuple[str, object]] = []
        self._header_field = b""
        self._header_value = b""
        self._part_headers: dict[bytes, bytes] = {}
        self._writer: Optional[UploadWriter] = None

    # ---------------------------------------------------------------------------
    # Parser callbacks
    # ---------------------------------------------------------------------------

    def on_part_begin(self) -> None:
        self._part_headers = {}

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def on_header_end(self) -> None:
        self._part_headers[self._header_field.lower()] = self._header_value
        self._header_field = b""
        self._header_value = b""

    def on_headers_finished(self) -> None:
        self._events.append((_HEADERS, self._part_headers))

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._events.append((_DATA, bytes(data[start:end])))

    def on_part_end(self) -> None:
        self._events.append((_END, None))

    # ---------------------------------------------------------------------------
    # Part handling
    # ---------------------------------------------------------------------------

    def _start_part(self, part_headers: dict[bytes, bytes]) -> None:
        _disposition, options = parse_options_header(part_headers.get(b"content-disposition", b""))
        name = options.get(b"name", b"").decode("utf-8", errors="replace")

        if b"filename" not in options:
            logger.debug("text_field_ignored", field=name)
            return

        filename = options[b"filename"].decode("utf-8", errors="replace")
        content_type = part_headers.get(b"content-type", b"").decode("latin-1")

        self.validator.check_field(name)
        self.validator.check_count(len(self.images) + 1)
        self.validator.check_content_type(content_type)

        self._writer = self.store.open_upload(filename, content_type)
        self.cleanup.track(self._writer.path)

    def _write(self, chunk: bytes) -> None:
        if self._writer is None:
            return
        self.validator.check_size(self._writer.size_bytes + len(chunk), self._writer.original_filename)
        self._writer.write(chunk)

    def _finish_part(self) -> None:
        if self._writer is None:
            return
        self.images.append(self._writer.close())
        self._writer = None

    def _drain(self) -> None:
        events, self._events = self._events, []
        for kind, payload in events:
            if kind == _HEADERS:
                self._start_part(payload)
            elif kind == _DATA:
                self._write(payload)
            else:
                self._finish_part()

    async def parse(self) -> list[UploadedImage]:
        """Read the whole body and return the accepted images in arrival order.

        A body that is not ``multipart/form-data`` yields no images.

        Raises:
            UploadError: If the multipart body is malformed.
            ClientError: Any rejection raised by the validator.
        """
        content_type, params = parse_options_header(self.headers.get("content-type", ""))
        if content_type.lower() != b"multipart/form-data":
            return self.images

        boundary = params.get(b"boundary")
        if not boundary:
            raise UploadError("Missing boundary in multipart content type")

        parser = MultipartParser(
            boundary,
            callbacks={
                "on_part_begin": self.on_part_begin,
                "on_part_data": self.on_part_data,
                "on_part_end": self.on_part_end,
                "on_header_field": self.on_header_field,
                "on_header_value": self.on_header_value,
                "on_header_end": self.on_header_end,
                "on_headers_finished": self.on_headers_finished,
            },
        )

        try:
            async for chunk in self.stream:
                parser.write(chunk)
                self._drain()
            parser.finalize()
            self._drain()
        except MultipartParseError as exc:
            raise UploadError(str(exc)) from exc
        finally:
            if self._writer is not None:
                self._writer.abort()
                self._writer = None

        return self.images
