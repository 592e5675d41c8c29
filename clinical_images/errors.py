"""Exception hierarchy for the clinical image service."""


class ClinicalImageError(Exception):
    """Base exception for image record operations."""
    pass


class ValidationError(ClinicalImageError, ValueError):
    """Raised when a request is missing required input or carries invalid input.

    Not retried; surfaced to the caller as a rejected request.
    """
    pass


class NotFoundError(ClinicalImageError):
    """Raised when no visible image record exists for an ID."""

    def __init__(self, image_id: str):
        self.image_id = image_id
        super().__init__(f"Image with ID {image_id} not found")


class StoreError(ClinicalImageError):
    """Raised when the underlying filesystem or database fails.

    The service neither retries nor rolls back partially completed
    multi-store writes when this is raised.
    """
    pass
