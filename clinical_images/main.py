import logging
from contextlib import asynccontextmanager
from typing import Any, List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from clinical_images.dependencies import get_image_service, initialize_stores
from clinical_images.errors import NotFoundError, StoreError, ValidationError
from clinical_images.schemas import (
    AnnotateRequest,
    AnnotateResponse,
    ImageRecordResponse,
    ImageSummary,
    ImageUploadResponse,
)
from clinical_images.service import ImageRecordService
from clinical_images.storage.local import LocalBlobStore
from config import get_settings

# Get settings and configure logging before anything else
settings = get_settings()
settings.configure_logging()

# Create logger for this module
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Debug mode: {settings.debug}")
    logger.info(f"Storage type: {settings.storage_type}")
    logger.info(f"Metadata storage: {settings.metadata_storage}")
    logger.info(f"Patient resolver: {settings.patient_resolver}")

    initialize_stores()

    yield

    # Shutdown
    logger.info("Shutting down application")


# Create FastAPI app with settings
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.storage_type == "local":
    app.mount(
        f"/{LocalBlobStore.url_prefix}",
        StaticFiles(directory=settings.storage_root, check_dir=False),
        name="uploads",
    )


@app.get("/health")
def health_check() -> dict[str, str]:
    """Simple health-check endpoint."""
    return {
        "status": "ok",
        "environment": settings.environment,
        "version": settings.app_version,
    }


@app.get("/config")
def get_config() -> dict[str, Any]:
    """Get current configuration (non-sensitive values only)."""
    return {
        "app_name": settings.app_name,
        "app_version": settings.app_version,
        "environment": settings.environment,
        "debug": settings.debug,
        "storage_type": settings.storage_type,
        "metadata_storage": settings.metadata_storage,
        "patient_resolver": settings.patient_resolver,
        "log_level": settings.log_level,
        "log_json": settings.log_json,
        "max_upload_size": settings.max_upload_size,
    }


@app.post("/images/upload", response_model=ImageUploadResponse, tags=["images"])
async def upload_image(
    image: Optional[UploadFile] = File(None),
    encounter_id: Optional[str] = Form(None, alias="encounterId"),
    patient_id: Optional[str] = Form(None, alias="patientId"),
    description: Optional[str] = Form(None),
    service: ImageRecordService = Depends(get_image_service),
) -> ImageUploadResponse:
    """Upload an image for an encounter.

    The patient is resolved from the encounter when ``patientId`` is omitted.

    Raises:
        HTTPException: 400 if no image or encounter was supplied, 500 if it cannot be saved.
    """
    content = await image.read() if image is not None else None

    try:
        record = await service.upload_image(
            content,
            image.content_type if image is not None else None,
            encounter_id,
            patient_id=patient_id,
            description=description,
            filename=image.filename if image is not None else None,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        logger.error(f"Failed to upload image: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to save image: {e}")

    return ImageUploadResponse(id=record.id, url=service.url_for(record))


@app.get("/images/blob/{image_id}", tags=["images"])
def get_image_blob(
    image_id: str,
    service: ImageRecordService = Depends(get_image_service),
) -> Response:
    """Stream the stored image bytes with their original content type."""
    try:
        content, content_type = service.read_blob(image_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Image not found")
    except StoreError as e:
        raise HTTPException(status_code=500, detail=f"Failed to read image: {e}")
    return Response(content=content, media_type=content_type)


@app.get("/images/encounter/{encounter_id}", response_model=List[ImageSummary], tags=["images"])
def list_encounter_images(
    encounter_id: str,
    service: ImageRecordService = Depends(get_image_service),
) -> List[ImageSummary]:
    """List all images attached to an encounter, newest first."""
    try:
        return service.list_by_encounter(encounter_id)
    except StoreError as e:
        raise HTTPException(status_code=500, detail=f"Failed to list images: {e}")


@app.get("/images/patient/{patient_id}", response_model=List[ImageSummary], tags=["images"])
def list_patient_images(
    patient_id: str,
    service: ImageRecordService = Depends(get_image_service),
) -> List[ImageSummary]:
    """List all images belonging to a patient, newest first."""
    try:
        return service.list_by_patient(patient_id)
    except StoreError as e:
        raise HTTPException(status_code=500, detail=f"Failed to list images: {e}")


@app.get("/images/{image_id}", response_model=ImageRecordResponse, tags=["images"])
def get_image(
    image_id: str,
    service: ImageRecordService = Depends(get_image_service),
) -> ImageRecordResponse:
    """Get an image record with its annotations and text overlays."""
    try:
        record = service.get_image(image_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Image not found")
    except StoreError as e:
        raise HTTPException(status_code=500, detail=f"Failed to read image: {e}")
    return ImageRecordResponse(**record.model_dump(), url=service.url_for(record))


@app.put("/images/{image_id}/annotate", response_model=AnnotateResponse, tags=["images"])
def annotate_image(
    image_id: str,
    request: AnnotateRequest,
    service: ImageRecordService = Depends(get_image_service),
) -> AnnotateResponse:
    """Save drawings and/or text overlays for an image.

    Fields left out of the body keep their stored value.
    """
    try:
        service.annotate_image(image_id, annotations=request.annotations, texts=request.texts)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Image not found")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=500, detail=f"Failed to save annotations: {e}")
    return AnnotateResponse(success=True)
