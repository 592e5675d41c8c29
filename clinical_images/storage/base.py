"""Blob store interface for image bytes."""

from typing import Optional, Protocol, runtime_checkable

from clinical_images.errors import StoreError


@runtime_checkable
class BlobStore(Protocol):
    """Abstract interface for storing raw image bytes.

    Bytes are stored exactly as received and are write-once: no
    implementation replaces the content stored for a record.
    """

    def save_blob(
        self,
        record_id: str,
        content: bytes,
        content_type: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> str:
        """Store image bytes for a record.

        Args:
            record_id: Service-assigned ID of the image record.
            content: Raw image bytes to store.
            content_type: MIME type of the bytes.
            filename: Client-supplied file name, used for the extension hint.

        Returns:
            str: Reference to pass back to ``read_blob``.

        Raises:
            ValidationError: If the content is empty.
            StoreError: If the bytes cannot be saved.
        """
        ...

    def read_blob(self, blob_ref: str) -> bytes:
        """Read image bytes by reference.

        Raises:
            FileNotFoundError: If no bytes exist for the reference.
            StoreError: If the bytes cannot be read.
        """
        ...

    def address_for(self, record_id: str, blob_ref: str) -> str:
        """Return a relative URL path the transport can serve the bytes from."""
        ...


__all__ = ["BlobStore", "StoreError"]
