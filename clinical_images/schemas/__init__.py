"""Pydantic schemas for image records and API payloads."""

from .image import (
    DEFAULT_CONTENT_TYPE,
    AnnotateRequest,
    AnnotateResponse,
    ImageRecord,
    ImageRecordResponse,
    ImageSummary,
    ImageUploadResponse,
)

__all__ = [
    "DEFAULT_CONTENT_TYPE",
    "ImageRecord",
    "ImageRecordResponse",
    "ImageSummary",
    "ImageUploadResponse",
    "AnnotateRequest",
    "AnnotateResponse",
]
