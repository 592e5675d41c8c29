"""Database models for the clinical image service."""

from .db import Base, ImageRecordRow

__all__ = ["Base", "ImageRecordRow"]
