"""Local filesystem implementation of BlobStore."""
import logging
import mimetypes
import re
from pathlib import Path
from typing import Optional

from clinical_images.errors import ValidationError
from config import get_settings

from .base import BlobStore, StoreError

logger = logging.getLogger(__name__)

_EXTENSION_PATTERN = re.compile(r"^\.[A-Za-z0-9]{1,8}$")


class LocalBlobStore(BlobStore):
    """Local filesystem blob store.

    Stores each image as ``<record id><ext>`` in a configurable directory.
    The returned reference is the bare file name, which the transport serves
    under ``uploads/``.
    """

    url_prefix = "uploads"

    def __init__(self, storage_root: Optional[str | Path] = None):
        """Initialize local blob store.

        Args:
            storage_root: Root directory for storing images.
                         If not provided, uses the configured storage root from settings.
        """
        if storage_root is not None:
            self.storage_root = Path(storage_root)
        else:
            self.storage_root = get_settings().storage_root

        self._ensure_storage_dir()
        logger.info(f"Initialized LocalBlobStore with root: {self.storage_root}")

    def _ensure_storage_dir(self) -> None:
        """Ensure the storage directory exists."""
        try:
            self.storage_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create storage directory: {e}")
            raise StoreError(f"Failed to create storage directory: {e}")

    @staticmethod
    def _extension(content_type: Optional[str], filename: Optional[str]) -> str:
        """Pick a file extension from the client file name or the content type."""
        if filename:
            suffix = Path(filename).suffix
            if _EXTENSION_PATTERN.match(suffix):
                return suffix.lower()
        if content_type:
            guessed = mimetypes.guess_extension(content_type.split(";")[0].strip())
            if guessed:
                return guessed
        return ".bin"

    def save_blob(
        self,
        record_id: str,
        content: bytes,
        content_type: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> str:
        """Write image bytes to ``<storage_root>/<record_id><ext>``.

        Returns:
            str: The file name of the stored image.

        Raises:
            ValidationError: If the content is empty.
            StoreError: If the file exists already or cannot be written.
        """
        if not content:
            raise ValidationError("Image content cannot be empty")

        name = f"{record_id}{self._extension(content_type, filename)}"
        file_path = self.storage_root / name

        try:
            # Exclusive create keeps stored bytes write-once
            with file_path.open("xb") as fh:
                fh.write(content)
        except OSError as e:
            logger.error(f"Failed to save image {name}: {e}")
            raise StoreError(f"Failed to save image: {e}")

        logger.debug(f"Saved image to: {file_path}")
        return name

    def read_blob(self, blob_ref: str) -> bytes:
        """Read image bytes by file name.

        Only the final path component of the reference is used, so a
        reference cannot escape the storage root.
        """
        if not blob_ref:
            raise ValidationError("Image reference cannot be empty")

        file_path = self.storage_root / Path(blob_ref).name
        if not file_path.is_file():
            logger.warning(f"Image not found: {blob_ref}")
            raise FileNotFoundError(f"Image not found: {blob_ref}")

        try:
            return file_path.read_bytes()
        except OSError as e:
            logger.error(f"Failed to read image from {file_path}: {e}")
            raise StoreError(f"Failed to read image: {e}")

    def address_for(self, record_id: str, blob_ref: str) -> str:
        return f"{self.url_prefix}/{Path(blob_ref).name}"
