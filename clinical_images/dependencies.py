"""FastAPI dependency injection configuration."""

import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from clinical_images.db import SessionLocal, get_db
from clinical_images.repositories import (
    InMemoryMetadataStore,
    MetadataStore,
    RelationalMetadataStore,
    SidecarMetadataStore,
)
from clinical_images.resolver import PatientResolver, create_patient_resolver
from clinical_images.service import ImageRecordService
from clinical_images.storage import BlobStore, DatabaseBlobStore, LocalBlobStore
from config import get_settings

logger = logging.getLogger(__name__)


# Process-wide instances for backends that hold no per-request session
_metadata_store: MetadataStore | None = None
_blob_store: BlobStore | None = None
_patient_resolver: PatientResolver | None = None


def _shared_metadata_store() -> MetadataStore:
    global _metadata_store
    if _metadata_store is None:
        settings = get_settings()
        if settings.metadata_storage == "sidecar":
            _metadata_store = SidecarMetadataStore(settings.metadata_root)
        else:
            _metadata_store = InMemoryMetadataStore()
        logger.info(f"Created {settings.metadata_storage} metadata store")
    return _metadata_store


def get_metadata_store(db: Session = Depends(get_db)) -> MetadataStore:
    """Get the metadata store selected by METADATA_STORAGE.

    - "memory": InMemoryMetadataStore (data lost on restart)
    - "sidecar": SidecarMetadataStore (one JSON file per image)
    - "database": RelationalMetadataStore (one row per image)

    Args:
        db: Database session (only used for database metadata storage)
    """
    if get_settings().metadata_storage == "database":
        return RelationalMetadataStore(db)
    return _shared_metadata_store()


def get_blob_store(db: Session = Depends(get_db)) -> BlobStore:
    """Get the blob store selected by STORAGE_TYPE.

    - "local": LocalBlobStore (files under STORAGE_ROOT)
    - "database": DatabaseBlobStore (BLOB column of the record row)
    """
    settings = get_settings()
    if settings.storage_type == "database":
        return DatabaseBlobStore(db)

    global _blob_store
    if _blob_store is None:
        _blob_store = LocalBlobStore(settings.storage_root)
    return _blob_store


def get_patient_resolver() -> PatientResolver:
    """Get the patient resolver selected by PATIENT_RESOLVER."""
    global _patient_resolver
    if _patient_resolver is None:
        _patient_resolver = create_patient_resolver(get_settings(), session_factory=SessionLocal)
    return _patient_resolver


def get_image_service(
    blob_store: BlobStore = Depends(get_blob_store),
    metadata_store: MetadataStore = Depends(get_metadata_store),
    patient_resolver: PatientResolver = Depends(get_patient_resolver),
) -> ImageRecordService:
    """Assemble the image record service for one request."""
    settings = get_settings()
    return ImageRecordService(
        blob_store=blob_store,
        metadata_store=metadata_store,
        patient_resolver=patient_resolver,
        public_base_url=settings.public_base_url,
        max_upload_size=settings.max_upload_size,
    )


def initialize_stores() -> None:
    """Run the idempotent initialization of the configured stores.

    Called once at application startup.
    """
    settings = get_settings()
    if settings.metadata_storage == "database":
        db = SessionLocal()
        try:
            RelationalMetadataStore(db).init_store()
        finally:
            db.close()
    else:
        _shared_metadata_store().init_store()

    if settings.storage_type == "local":
        settings.storage_root.mkdir(parents=True, exist_ok=True)
