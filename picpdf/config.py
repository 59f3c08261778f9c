"""Application configuration loaded from environment variables."""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Central configuration for the picpdf conversion service."""

    # Storage
    upload_dir: str = Field(default="data/uploads", description="Scratch directory for accepted uploads")
    generated_dir: str = Field(default="data/generated", description="Scratch directory for generated PDFs")

    # Ingestion limits
    max_file_size: int = Field(default=10 * 1024 * 1024, description="Maximum bytes per uploaded image")
    max_files: int = Field(default=50, description="Maximum images per conversion request")
    allowed_content_types: list[str] = Field(
        default=["image/jpeg", "image/png"], description="Accepted part content types"
    )
    upload_field: str = Field(default="images", description="Multipart field carrying the images")

    # Output
    page_size: str = Field(default="A4", description="reportlab page size name used for every page")
    output_filename: str = Field(default="converted.pdf", description="Download name sent to the client")

    # API
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=5000, description="API port")
    cors_origins: list[str] = Field(default=["*"], description="Allowed CORS origins")
    log_level: str = Field(default="INFO", description="Root log level")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "PICPDF_",
        "case_sensitive": False,
    }

    @property
    def max_file_size_mb(self) -> int:
        return self.max_file_size // (1024 * 1024)


# Singleton instance
settings = Settings()
