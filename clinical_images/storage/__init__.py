"""Storage module for image bytes."""

from .base import BlobStore, StoreError
from .database import DatabaseBlobStore
from .local import LocalBlobStore

__all__ = ["BlobStore", "StoreError", "LocalBlobStore", "DatabaseBlobStore"]
