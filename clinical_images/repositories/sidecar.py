"""Metadata store keeping one JSON file per image record."""

import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

from pydantic import ValidationError as PydanticValidationError

from clinical_images.errors import StoreError
from clinical_images.schemas.image import ImageRecord
from config import get_settings

from .image import MetadataStore, matches, sort_newest_first

logger = logging.getLogger(__name__)


class SidecarMetadataStore(MetadataStore):
    """Stores each record as ``<metadata_root>/<id>.json``.

    Files hold the camelCase JSON form of ``ImageRecord``. Listing scans
    the whole directory and filters in memory.
    """

    def __init__(self, metadata_root: Optional[str | Path] = None):
        """Initialize the sidecar store.

        Args:
            metadata_root: Directory holding the JSON files.
                           If not provided, uses the configured metadata root from settings.
        """
        if metadata_root is not None:
            self.metadata_root = Path(metadata_root)
        else:
            self.metadata_root = get_settings().metadata_root
        logger.info(f"Initialized SidecarMetadataStore with root: {self.metadata_root}")

    def init_store(self) -> None:
        try:
            self.metadata_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create metadata directory: {e}")
            raise StoreError(f"Failed to create metadata directory: {e}")

    def _path_for(self, image_id: str) -> Path:
        return self.metadata_root / f"{Path(image_id).name}.json"

    def _write(self, record: ImageRecord) -> None:
        """Write a record atomically so readers never see a partial file."""
        payload = record.model_dump_json(by_alias=True, indent=2)
        try:
            self.metadata_root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.metadata_root, prefix=".", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(payload)
                os.replace(tmp_name, self._path_for(record.id))
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.error(f"Failed to write metadata for {record.id}: {e}")
            raise StoreError(f"Failed to write metadata: {e}")

    def _load(self, path: Path) -> ImageRecord:
        try:
            return ImageRecord.model_validate_json(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise StoreError(f"Failed to read metadata {path.name}: {e}")

    def create(self, record: ImageRecord) -> None:
        self._write(record)
        logger.debug(f"Wrote metadata file for {record.id}")

    def read(self, image_id: str) -> Optional[ImageRecord]:
        path = self._path_for(image_id)
        if not path.is_file():
            return None
        try:
            return self._load(path)
        except PydanticValidationError as e:
            logger.error(f"Corrupt metadata file {path}: {e}")
            raise StoreError(f"Corrupt metadata for {image_id}")

    def update_layer(
        self,
        image_id: str,
        edited_at: datetime,
        annotations: Any = None,
        texts: Optional[List[Any]] = None,
    ) -> bool:
        record = self.read(image_id)
        if record is None:
            return False

        if annotations is not None:
            record.annotations = annotations
        if texts is not None:
            record.texts = list(texts)
        record.last_edited_at = edited_at
        self._write(record)
        return True

    def list_by(
        self,
        encounter_id: Optional[str] = None,
        patient_id: Optional[str] = None,
    ) -> List[ImageRecord]:
        if not self.metadata_root.is_dir():
            return []

        found = []
        for path in self.metadata_root.glob("*.json"):
            try:
                record = self._load(path)
            except (StoreError, PydanticValidationError) as e:
                logger.warning(f"Skipping unreadable metadata file {path.name}: {e}")
                continue
            if matches(record, encounter_id, patient_id):
                found.append(record)
        logger.debug(f"Scanned {self.metadata_root}, {len(found)} records matched")
        return sort_newest_first(found)
