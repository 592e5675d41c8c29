"""Image record service: the one orchestrator shared by every backend variant."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Sequence, Tuple

from clinical_images.annotations import encode_layer
from clinical_images.errors import NotFoundError, StoreError, ValidationError
from clinical_images.identifiers import normalize_identifier
from clinical_images.repositories.image import MetadataStore
from clinical_images.resolver import PatientResolver
from clinical_images.schemas.image import DEFAULT_CONTENT_TYPE, ImageRecord, ImageSummary
from clinical_images.storage.base import BlobStore

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ImageRecordService:
    """Uploads, reads, annotates and lists image records.

    Image bytes go to a ``BlobStore`` and everything else to a
    ``MetadataStore``. The two writes of an upload are sequential and not
    transactional: the blob is written first and the metadata write makes
    the record visible. If the metadata write fails the blob is left behind
    as an orphan; it is logged but not cleaned up.

    Annotation updates are last-write-wins. Two concurrent ``annotate_image``
    calls on the same record are not serialized and one may be lost.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        metadata_store: MetadataStore,
        patient_resolver: PatientResolver,
        public_base_url: str = "",
        max_upload_size: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.blob_store = blob_store
        self.metadata_store = metadata_store
        self.patient_resolver = patient_resolver
        self.public_base_url = public_base_url.rstrip("/")
        self.max_upload_size = max_upload_size
        self.clock = clock

    async def upload_image(
        self,
        content: Optional[bytes],
        content_type: Optional[str],
        encounter_id: Any,
        patient_id: Any = None,
        description: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> ImageRecord:
        """Store a new image and its metadata.

        Args:
            content: Raw image bytes.
            content_type: MIME type of the bytes.
            encounter_id: Encounter the image belongs to (string or number).
            patient_id: Owning patient; resolved from the encounter when omitted.
            description: Optional free-text description.
            filename: Client file name, kept as ``original_name``.

        Returns:
            ImageRecord: The persisted record; its ``id`` is service-assigned.

        Raises:
            ValidationError: If content or encounter is missing, or content is too large.
            StoreError: If either store fails.
        """
        if not content:
            raise ValidationError("No image was uploaded")
        if self.max_upload_size is not None and len(content) > self.max_upload_size:
            raise ValidationError(
                f"Image exceeds maximum upload size of {self.max_upload_size} bytes"
            )

        encounter = normalize_identifier(encounter_id)
        if encounter is None:
            raise ValidationError("encounterId is required")

        patient = normalize_identifier(patient_id)
        if patient is None:
            patient = await self.patient_resolver.resolve(encounter)
            if patient is None:
                logger.warning(f"No patient resolved for encounter {encounter}, storing without patient")

        image_id = str(uuid.uuid4())
        content_type = content_type or DEFAULT_CONTENT_TYPE
        logger.info(
            f"Processing image: {filename}, content length: {len(content)}, "
            f"ID: {image_id}, encounter: {encounter}"
        )

        blob_ref = self.blob_store.save_blob(image_id, content, content_type, filename)

        record = ImageRecord(
            id=image_id,
            encounter_id=encounter,
            patient_id=patient,
            blob_ref=blob_ref,
            content_type=content_type,
            original_name=filename,
            description=description,
            created_at=self.clock(),
        )
        try:
            self.metadata_store.create(record)
        except StoreError:
            logger.error(
                f"Metadata write failed for image {image_id}; "
                f"blob {blob_ref} is orphaned and was not removed"
            )
            raise

        logger.info(f"Successfully uploaded image: {image_id} -> {blob_ref}")
        return record

    def get_image(self, image_id: str) -> ImageRecord:
        """Return the full record, including the annotation layer.

        Raises:
            NotFoundError: If no record exists for ``image_id``.
        """
        record = self.metadata_store.read(image_id)
        if record is None:
            logger.warning(f"Image not found: {image_id}")
            raise NotFoundError(image_id)
        return record

    def annotate_image(
        self,
        image_id: str,
        annotations: Any = None,
        texts: Optional[Sequence[Any]] = None,
    ) -> bool:
        """Replace the drawing layer and/or the text overlays of a record.

        A field passed as None is left untouched. ``last_edited_at`` is
        stamped on every successful call, including one with neither field.

        Raises:
            ValidationError: If ``texts`` is not a sequence or a field is not
                plain JSON, non-finite numbers included.
            NotFoundError: If no record exists for ``image_id``.
        """
        if texts is not None and not isinstance(texts, (list, tuple)):
            raise ValidationError("texts must be a list of text overlays")
        encode_layer(annotations)
        encode_layer(texts)

        # Checked up front; some backends would silently no-op on a missing ID
        if self.metadata_store.read(image_id) is None:
            logger.warning(f"Cannot annotate non-existent image: {image_id}")
            raise NotFoundError(image_id)

        updated = self.metadata_store.update_layer(
            image_id,
            edited_at=self.clock(),
            annotations=annotations,
            texts=list(texts) if texts is not None else None,
        )
        if not updated:
            raise NotFoundError(image_id)

        logger.info(
            f"Updated annotations for image {image_id} "
            f"(annotations={'yes' if annotations is not None else 'no'}, "
            f"texts={'yes' if texts is not None else 'no'})"
        )
        return True

    def list_by_encounter(self, encounter_id: Any) -> List[ImageSummary]:
        """List summaries of all images for an encounter, newest first."""
        encounter = normalize_identifier(encounter_id)
        if encounter is None:
            return []
        records = self.metadata_store.list_by(encounter_id=encounter)
        logger.info(f"Listing {len(records)} images for encounter {encounter}.")
        return [self.summarize(r) for r in records]

    def list_by_patient(self, patient_id: Any) -> List[ImageSummary]:
        """List summaries of all images for a patient, newest first."""
        patient = normalize_identifier(patient_id)
        if patient is None:
            return []
        records = self.metadata_store.list_by(patient_id=patient)
        logger.info(f"Listing {len(records)} images for patient {patient}.")
        return [self.summarize(r) for r in records]

    def read_blob(self, image_id: str) -> Tuple[bytes, str]:
        """Return the stored bytes and content type of an image.

        Raises:
            NotFoundError: If the record or its bytes do not exist.
        """
        record = self.get_image(image_id)
        try:
            content = self.blob_store.read_blob(record.blob_ref)
        except FileNotFoundError:
            logger.error(f"Image {image_id} has metadata but no stored bytes")
            raise NotFoundError(image_id)
        return content, record.content_type

    def url_for(self, record: ImageRecord) -> str:
        """Build the URL the image bytes can be fetched from."""
        address = self.blob_store.address_for(record.id, record.blob_ref)
        return f"{self.public_base_url}/{address}"

    def summarize(self, record: ImageRecord) -> ImageSummary:
        return ImageSummary(
            id=record.id,
            encounter_id=record.encounter_id,
            patient_id=record.patient_id,
            description=record.description,
            content_type=record.content_type,
            created_at=record.created_at,
            url=self.url_for(record),
        )
