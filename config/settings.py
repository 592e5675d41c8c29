"""Application settings and configuration."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(
        default="Clinical Image Service",
        description="Application name"
    )
    app_version: str = Field(
        default="0.1.0",
        description="Application version"
    )
    environment: Literal["local", "dev", "stage", "prod"] = Field(
        default="local",
        description="Deployment environment"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # API Configuration
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins"
    )
    public_base_url: str = Field(
        default="http://localhost:8084",
        description="Base URL used when building image fetch URLs"
    )

    # Blob Storage Configuration (for image bytes)
    storage_type: Literal["local", "database"] = Field(
        default="local",
        description="Storage backend for image bytes"
    )
    storage_root: Path = Field(
        default=Path("data/images"),
        description="Root directory for local image storage"
    )

    # Metadata Storage Configuration
    metadata_storage: Literal["memory", "sidecar", "database"] = Field(
        default="sidecar",
        description="Storage backend for image metadata and annotations"
    )
    metadata_root: Path = Field(
        default=Path("data/metadata"),
        description="Directory holding sidecar JSON files"
    )

    @field_validator("storage_root", "metadata_root", mode="before")
    @classmethod
    def resolve_storage_path(cls, v: str | Path) -> Path:
        """Ensure storage directories are Path objects."""
        if isinstance(v, str):
            return Path(v)
        return v

    # Database Configuration (for relational metadata and BLOBs)
    database_url: str = Field(
        default="sqlite:///data/db.sqlite3",
        description="Database connection URL"
    )
    database_echo: bool = Field(
        default=False,
        description="Echo SQL statements (for debugging)"
    )

    # Patient Resolution Configuration
    patient_resolver: Literal["static", "http", "database"] = Field(
        default="static",
        description="How a missing patient ID is derived from an encounter ID"
    )
    encounter_patient_map: dict[str, str] = Field(
        default_factory=dict,
        description="Static encounter ID to patient ID mapping"
    )
    encounter_directory_url: Optional[str] = Field(
        default=None,
        description="Base URL of the encounter directory service"
    )
    encounter_directory_timeout: int = Field(
        default=10,
        description="Timeout for encounter directory requests (seconds)"
    )
    encounter_table: str = Field(
        default="encounters",
        description="Table holding encounters for the database resolver"
    )
    encounter_id_column: str = Field(
        default="id",
        description="Encounter ID column in the encounter table"
    )
    encounter_patient_column: str = Field(
        default="patient_id",
        description="Patient ID column in the encounter table"
    )

    # Logging Configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level"
    )
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format"
    )
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format"
    )
    log_file: Optional[Path] = Field(
        default=None,
        description="Path to log file (if None, logs to stdout only)"
    )

    # Performance Configuration
    max_upload_size: int = Field(
        default=10 * 1024 * 1024,  # 10MB
        description="Maximum image upload size in bytes"
    )

    @model_validator(mode="after")
    def check_backend_combination(self) -> "Settings":
        """Reject backend combinations that cannot work together."""
        if self.storage_type == "database" and self.metadata_storage != "database":
            raise ValueError(
                "storage_type 'database' keeps image bytes in the metadata row "
                "and requires metadata_storage 'database'"
            )
        if self.patient_resolver == "http" and not self.encounter_directory_url:
            raise ValueError("ENCOUNTER_DIRECTORY_URL must be set for the http patient resolver")
        return self

    @property
    def log_level_numeric(self) -> int:
        """Get numeric log level."""
        return getattr(logging, self.log_level)

    def configure_logging(self) -> None:
        """Configure logging based on settings."""
        import sys

        handlers: list[logging.Handler] = []

        console_handler = logging.StreamHandler(sys.stdout)
        handlers.append(console_handler)

        if self.log_file:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(self.log_file)
            handlers.append(file_handler)

        if self.log_json:
            # JSON formatter for structured logging
            import json

            class JSONFormatter(logging.Formatter):
                def format(self, record: logging.LogRecord) -> str:
                    log_obj = {
                        "timestamp": self.formatTime(record),
                        "level": record.levelname,
                        "logger": record.name,
                        "message": record.getMessage(),
                        "module": record.module,
                        "function": record.funcName,
                        "line": record.lineno,
                    }
                    if record.exc_info:
                        log_obj["exception"] = self.formatException(record.exc_info)
                    return json.dumps(log_obj)

            formatter = JSONFormatter()
        else:
            formatter = logging.Formatter(self.log_format)

        for handler in handlers:
            handler.setFormatter(formatter)

        logging.basicConfig(
            level=self.log_level_numeric,
            handlers=handlers,
            force=True,
        )

        if self.debug:
            logging.getLogger("clinical_images").setLevel(logging.DEBUG)
        else:
            # Reduce noise from third-party libraries
            logging.getLogger("urllib3").setLevel(logging.WARNING)
            logging.getLogger("httpx").setLevel(logging.WARNING)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
