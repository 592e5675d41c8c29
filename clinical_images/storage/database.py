"""Database BLOB implementation of BlobStore."""
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinical_images.errors import ValidationError
from clinical_images.models.db import ImageRecordRow
from clinical_images.schemas.image import DEFAULT_CONTENT_TYPE

from .base import BlobStore, StoreError

logger = logging.getLogger(__name__)


class DatabaseBlobStore(BlobStore):
    """Stores image bytes in the ``content`` column of the record's row.

    The reference is the record ID itself. If the row does not exist yet it
    is created invisible; the relational metadata store makes it visible.
    """

    url_prefix = "images/blob"

    def __init__(self, db: Session):
        """Initialize the blob store with a database session.

        Args:
            db: SQLAlchemy session for database operations
        """
        self.db = db

    def save_blob(
        self,
        record_id: str,
        content: bytes,
        content_type: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> str:
        if not content:
            raise ValidationError("Image content cannot be empty")

        try:
            row = self.db.get(ImageRecordRow, record_id)
            if row is not None and row.content is not None:
                raise StoreError(f"Image bytes already stored for {record_id}")
            if row is None:
                row = ImageRecordRow(id=record_id, is_visible=False)
                self.db.add(row)
            row.content = content
            row.content_type = content_type or DEFAULT_CONTENT_TYPE
            row.blob_ref = record_id
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to save image blob {record_id}: {e}")
            raise StoreError(f"Failed to save image: {e}")

        logger.debug(f"Saved {len(content)} bytes for image {record_id}")
        return record_id

    def read_blob(self, blob_ref: str) -> bytes:
        if not blob_ref:
            raise ValidationError("Image reference cannot be empty")

        try:
            row = self.db.get(ImageRecordRow, blob_ref)
        except SQLAlchemyError as e:
            logger.error(f"Failed to read image blob {blob_ref}: {e}")
            raise StoreError(f"Failed to read image: {e}")

        if row is None or row.content is None:
            logger.warning(f"Image not found: {blob_ref}")
            raise FileNotFoundError(f"Image not found: {blob_ref}")
        return row.content

    def address_for(self, record_id: str, blob_ref: str) -> str:
        return f"{self.url_prefix}/{record_id}"
