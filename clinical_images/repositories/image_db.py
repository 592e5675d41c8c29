"""SQLAlchemy-based metadata store."""

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinical_images.annotations import decode_annotations, decode_texts, encode_layer
from clinical_images.errors import StoreError
from clinical_images.models.db import Base, ImageRecordRow
from clinical_images.schemas.image import DEFAULT_CONTENT_TYPE, ImageRecord

from .image import MetadataStore

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to timestamps read back from backends that drop tzinfo."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RelationalMetadataStore(MetadataStore):
    """Stores one image record per row of the ``image_records`` table.

    The annotation layer is kept as JSON text. Rows written by the database
    blob store are invisible until ``create`` fills in the metadata.
    """

    def __init__(self, db: Session):
        """Initialize the store with a database session.

        Args:
            db: SQLAlchemy session for database operations
        """
        self.db = db

    def init_store(self) -> None:
        """Create the ``image_records`` table if it does not exist."""
        bind = self.db.get_bind()
        logger.info(f"Ensuring image_records table exists at {bind.url}")
        try:
            Base.metadata.create_all(bind=bind)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create tables: {e}")
            raise StoreError(f"Failed to initialize database: {e}")

    def create(self, record: ImageRecord) -> None:
        annotations = encode_layer(record.annotations)
        texts = encode_layer(record.texts)
        try:
            row = self.db.get(ImageRecordRow, record.id)
            if row is None:
                row = ImageRecordRow(id=record.id)
                self.db.add(row)
            row.encounter_id = record.encounter_id
            row.patient_id = record.patient_id
            row.blob_ref = record.blob_ref
            row.content_type = record.content_type
            row.original_name = record.original_name
            row.description = record.description
            row.annotations = annotations
            row.texts = texts
            row.created_at = record.created_at
            row.last_edited_at = record.last_edited_at
            row.is_visible = True
            self.db.commit()
            logger.info(f"Created image record row: {record.id}")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create image record {record.id}: {e}")
            raise StoreError(f"Failed to write metadata: {e}")

    def read(self, image_id: str) -> Optional[ImageRecord]:
        row = self._get_row(image_id)
        return self._to_record(row) if row else None

    def update_layer(
        self,
        image_id: str,
        edited_at: datetime,
        annotations: Any = None,
        texts: Optional[List[Any]] = None,
    ) -> bool:
        row = self._get_row(image_id)
        if row is None:
            return False

        encoded_annotations = encode_layer(annotations)
        encoded_texts = encode_layer(list(texts)) if texts is not None else None
        try:
            if encoded_annotations is not None:
                row.annotations = encoded_annotations
            if encoded_texts is not None:
                row.texts = encoded_texts
            row.last_edited_at = edited_at
            self.db.commit()
            logger.debug(f"Updated annotation layer for {image_id}")
            return True
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update image record {image_id}: {e}")
            raise StoreError(f"Failed to update metadata: {e}")

    def list_by(
        self,
        encounter_id: Optional[str] = None,
        patient_id: Optional[str] = None,
    ) -> List[ImageRecord]:
        query = self.db.query(ImageRecordRow).filter(ImageRecordRow.is_visible.is_(True))

        if encounter_id is not None:
            query = query.filter(ImageRecordRow.encounter_id == encounter_id)
        if patient_id is not None:
            query = query.filter(ImageRecordRow.patient_id == patient_id)

        try:
            rows = query.order_by(ImageRecordRow.created_at.desc()).all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to list image records: {e}")
            raise StoreError(f"Failed to list metadata: {e}")

        logger.debug(f"Found {len(rows)} image records")
        return [self._to_record(row) for row in rows]

    def _get_row(self, image_id: str) -> Optional[ImageRecordRow]:
        """Internal method to retrieve a visible row by its ID."""
        try:
            return (
                self.db.query(ImageRecordRow)
                .filter(ImageRecordRow.id == image_id, ImageRecordRow.is_visible.is_(True))
                .first()
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to read image record {image_id}: {e}")
            raise StoreError(f"Failed to read metadata: {e}")

    @staticmethod
    def _to_record(row: ImageRecordRow) -> ImageRecord:
        return ImageRecord(
            id=row.id,
            encounter_id=row.encounter_id,
            patient_id=row.patient_id,
            blob_ref=row.blob_ref,
            content_type=row.content_type or DEFAULT_CONTENT_TYPE,
            original_name=row.original_name,
            description=row.description,
            annotations=decode_annotations(row.annotations),
            texts=decode_texts(row.texts),
            created_at=_as_utc(row.created_at),
            last_edited_at=_as_utc(row.last_edited_at),
        )
