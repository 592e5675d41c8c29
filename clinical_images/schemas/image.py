"""Image record models and API schemas."""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys, accepting either form on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ImageRecord(CamelModel):
    """An uploaded image together with its metadata and annotation layer.

    The same model is written to sidecar JSON files, mapped onto relational
    rows and returned by the service, so every backend exposes identical
    fields.
    """

    id: str = Field(..., description="Service-assigned unique identifier")
    encounter_id: str = Field(..., description="Encounter the image belongs to")
    patient_id: Optional[str] = Field(
        None,
        description="Owning patient; absent when it could not be resolved"
    )
    blob_ref: str = Field(..., description="Blob store reference for the image bytes")
    content_type: str = Field(DEFAULT_CONTENT_TYPE, description="MIME type of the image bytes")
    original_name: Optional[str] = Field(None, description="File name supplied by the client")
    description: Optional[str] = Field(None, description="Free-text description, set at upload")
    annotations: Any = Field(
        default_factory=list,
        description="Opaque drawing-layer data, stored as-is"
    )
    texts: List[Any] = Field(
        default_factory=list,
        description="Ordered text-overlay objects, stored as-is"
    )
    created_at: datetime = Field(..., description="Creation time (UTC)")
    last_edited_at: Optional[datetime] = Field(None, description="Time of the last annotation write")

    @field_validator("texts", mode="before")
    @classmethod
    def default_texts(cls, v: Any) -> Any:
        """Treat missing texts as an empty sequence."""
        if v is None:
            return []
        return v


class ImageRecordResponse(ImageRecord):
    """Full image record as returned by the API, with its fetch URL."""

    url: str = Field(..., description="URL the image bytes can be fetched from")


class ImageSummary(CamelModel):
    """Reduced projection of an image record used in listings.

    Omits the annotation layer and the image bytes.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "id": "3f2b8c1e-7a4d-4e8b-9c2f-1d5e6a7b8c9d",
                    "encounterId": "1042",
                    "patientId": "77",
                    "description": "Left forearm, day 3",
                    "contentType": "image/jpeg",
                    "createdAt": "2026-10-18T09:30:00Z",
                    "url": "http://localhost:8084/uploads/3f2b8c1e-7a4d-4e8b-9c2f-1d5e6a7b8c9d.jpg"
                }
            ]
        }
    )

    id: str
    encounter_id: str
    patient_id: Optional[str] = None
    description: Optional[str] = None
    content_type: str = DEFAULT_CONTENT_TYPE
    created_at: datetime
    url: str


class ImageUploadResponse(CamelModel):
    """Response model for a successful image upload."""

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "id": "3f2b8c1e-7a4d-4e8b-9c2f-1d5e6a7b8c9d",
                    "url": "http://localhost:8084/uploads/3f2b8c1e-7a4d-4e8b-9c2f-1d5e6a7b8c9d.jpg"
                }
            ]
        }
    )

    id: str = Field(..., description="Unique identifier of the new image record")
    url: str = Field(..., description="URL the image bytes can be fetched from")


class AnnotateRequest(CamelModel):
    """Partial update of the annotation layer.

    Fields left out (or null) are not touched.
    """

    annotations: Any = Field(None, description="New drawing-layer data")
    texts: Optional[List[Any]] = Field(None, description="New text overlays")


class AnnotateResponse(CamelModel):
    """Response model for a successful annotation update."""

    success: bool = True
