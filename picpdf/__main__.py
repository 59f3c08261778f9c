"""Serve the API with uvicorn.

Run with: python -m picpdf
"""

import uvicorn

from picpdf.config import settings


def main() -> None:
    uvicorn.run("picpdf.main:app", host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
