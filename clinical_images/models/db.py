"""SQLAlchemy database models."""

from sqlalchemy import Boolean, Column, DateTime, LargeBinary, String, Text
from sqlalchemy.orm import declarative_base

# Create the declarative base
Base = declarative_base()


class ImageRecordRow(Base):
    """One image record per row.

    Serves both the relational metadata store and the database blob store.
    When the blob store writes first, the row exists with only ``content``
    set and stays invisible until the metadata store fills it in and sets
    ``is_visible``.
    """
    __tablename__ = "image_records"

    # uuid4 string assigned by the service
    id = Column(String(36), primary_key=True, nullable=False)

    encounter_id = Column(String(64), nullable=True, index=True)
    patient_id = Column(String(64), nullable=True, index=True)

    # File name for the local blob store, record ID for the database blob store
    blob_ref = Column(String(255), nullable=True)
    content = Column(LargeBinary, nullable=True)
    content_type = Column(String(255), nullable=True)
    original_name = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)

    # JSON-encoded annotation layer
    annotations = Column(Text, nullable=True)
    texts = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=True, index=True)
    last_edited_at = Column(DateTime(timezone=True), nullable=True)

    is_visible = Column(Boolean, nullable=False, default=False, index=True)

    def __repr__(self) -> str:
        return (
            f"<ImageRecordRow(id={self.id}, encounter_id={self.encounter_id}, "
            f"visible={self.is_visible})>"
        )
