"""
Pytest configuration and fixtures for picpdf tests.
"""

import io
import os
import re
import shutil
import tempfile

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from pypdf import PdfReader

# Keep the module-level app away from the working directory
_SESSION_ROOT = tempfile.mkdtemp(prefix="picpdf_test_")
os.environ["PICPDF_UPLOAD_DIR"] = os.path.join(_SESSION_ROOT, "uploads")
os.environ["PICPDF_GENERATED_DIR"] = os.path.join(_SESSION_ROOT, "generated")

from picpdf.config import Settings
from picpdf.main import create_app
from picpdf.storage.local import TransientStore

_DO_OPERATOR = re.compile(rb"/([^\s/\[\]()<>{}%]+)\s+Do\b")


def pytest_sessionfinish(session, exitstatus):
    shutil.rmtree(_SESSION_ROOT, ignore_errors=True)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at per-test scratch directories."""
    return Settings(
        upload_dir=str(tmp_path / "uploads"),
        generated_dir=str(tmp_path / "generated"),
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    """Create a test client for the FastAPI app."""
    return TestClient(app)


@pytest.fixture
def store(tmp_path):
    return TransientStore(tmp_path / "uploads", tmp_path / "generated")


def make_image(width: int, height: int, fmt: str = "PNG", color=(200, 40, 40)) -> bytes:
    """Encode a solid-colour image of the given size."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


def png_part(name: str, width: int = 40, height: int = 30, field: str = "images"):
    return (field, (name, make_image(width, height), "image/png"))


def page_image_sizes(pdf_bytes: bytes) -> list[list[tuple[int, int]]]:
    """Pixel sizes of the image XObjects placed on each page, in page order."""
    reader = PdfReader(io.BytesIO(pdf_bytes))
    sizes = []
    for page in reader.pages:
        xobjects = page["/Resources"]["/XObject"]
        drawn = _DO_OPERATOR.findall(page.get_contents().get_data())
        sizes.append([
            (int(xobjects["/" + name.decode()]["/Width"]), int(xobjects["/" + name.decode()]["/Height"]))
            for name in drawn
        ])
    return sizes


def scratch_files(settings: Settings) -> list[str]:
    """Every file left in either scratch directory."""
    found = []
    for directory in (settings.upload_dir, settings.generated_dir):
        if os.path.isdir(directory):
            found.extend(os.listdir(directory))
    return found
