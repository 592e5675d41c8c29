"""Metadata store implementations for image records."""

from .image import InMemoryMetadataStore, MetadataStore
from .image_db import RelationalMetadataStore
from .sidecar import SidecarMetadataStore

__all__ = [
    "MetadataStore",
    "InMemoryMetadataStore",
    "SidecarMetadataStore",
    "RelationalMetadataStore",
]
