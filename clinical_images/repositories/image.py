"""Metadata store interface and in-memory implementation."""

import logging
from datetime import datetime
from typing import Any, List, Optional, Protocol

from clinical_images.schemas.image import ImageRecord

logger = logging.getLogger(__name__)


class MetadataStore(Protocol):
    """Interface for image record metadata and annotation storage.

    Implementations persist the structured fields of an ``ImageRecord``
    keyed by its ID. Annotation updates are last-write-wins: concurrent
    ``update_layer`` calls on the same ID are not serialized, so one of
    them may be lost.
    """

    def init_store(self) -> None:
        """Prepare the backing storage. Idempotent; called once at startup."""
        ...

    def create(self, record: ImageRecord) -> None:
        """Persist a new record and make it visible to reads.

        Raises:
            StoreError: If the record cannot be written.
        """
        ...

    def read(self, image_id: str) -> Optional[ImageRecord]:
        """Return the record for ``image_id``, or None if it does not exist."""
        ...

    def update_layer(
        self,
        image_id: str,
        edited_at: datetime,
        annotations: Any = None,
        texts: Optional[List[Any]] = None,
    ) -> bool:
        """Update the annotation layer of a record.

        Only the fields that are not None are written; ``edited_at`` is
        always stored as the record's ``last_edited_at``.

        Returns:
            bool: True if the record exists and was updated, False otherwise.
        """
        ...

    def list_by(
        self,
        encounter_id: Optional[str] = None,
        patient_id: Optional[str] = None,
    ) -> List[ImageRecord]:
        """List records matching all given filters, newest first."""
        ...


def sort_newest_first(records: List[ImageRecord]) -> List[ImageRecord]:
    """Order records by creation time, most recent first."""
    return sorted(records, key=lambda r: r.created_at, reverse=True)


def matches(
    record: ImageRecord,
    encounter_id: Optional[str] = None,
    patient_id: Optional[str] = None,
) -> bool:
    """Check a record against optional encounter and patient filters."""
    if encounter_id is not None and record.encounter_id != encounter_id:
        return False
    if patient_id is not None and record.patient_id != patient_id:
        return False
    return True


class InMemoryMetadataStore(MetadataStore):
    """In-memory implementation of MetadataStore.

    This implementation stores records in a simple dictionary.
    Data is not persisted and will be lost when the application restarts.
    Suitable for development and testing.
    """

    def __init__(self):
        """Initialize the in-memory store."""
        self._storage: dict[str, ImageRecord] = {}
        logger.info("Initialized InMemoryMetadataStore")

    def init_store(self) -> None:
        pass

    def create(self, record: ImageRecord) -> None:
        self._storage[record.id] = record.model_copy(deep=True)
        logger.debug(f"Added image record: {record.id}")

    def read(self, image_id: str) -> Optional[ImageRecord]:
        record = self._storage.get(image_id)
        return record.model_copy(deep=True) if record else None

    def update_layer(
        self,
        image_id: str,
        edited_at: datetime,
        annotations: Any = None,
        texts: Optional[List[Any]] = None,
    ) -> bool:
        record = self._storage.get(image_id)
        if record is None:
            return False

        updates: dict[str, Any] = {"last_edited_at": edited_at}
        if annotations is not None:
            updates["annotations"] = annotations
        if texts is not None:
            updates["texts"] = list(texts)
        self._storage[image_id] = record.model_copy(update=updates, deep=True)
        return True

    def list_by(
        self,
        encounter_id: Optional[str] = None,
        patient_id: Optional[str] = None,
    ) -> List[ImageRecord]:
        found = [
            r.model_copy(deep=True)
            for r in self._storage.values()
            if matches(r, encounter_id, patient_id)
        ]
        return sort_newest_first(found)

    def count(self) -> int:
        """Get the total number of records in the store."""
        return len(self._storage)

    def clear(self) -> None:
        """Clear all entries from the store.

        This is mainly useful for testing purposes.
        """
        self._storage.clear()
        logger.debug("Cleared all image records from store")
