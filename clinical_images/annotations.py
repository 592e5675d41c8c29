"""Encoding of the annotation layer for backends that store it as text."""

import json
import logging
from typing import Any, List, Optional

from clinical_images.errors import ValidationError

logger = logging.getLogger(__name__)


def encode_layer(value: Any) -> Optional[str]:
    """Encode an annotation or text-overlay value as a JSON string.

    Strings are encoded too, so a stored string decodes back to the same
    string rather than being parsed as structured data.

    Non-finite numbers are rejected.

    Raises:
        ValidationError: If the value cannot be serialized.
    """
    if value is None:
        return None
    try:
        return json.dumps(value, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Annotation data is not JSON serializable: {e}")


def decode_annotations(raw: Optional[str]) -> Any:
    """Decode stored annotations into their native form.

    Values written before encoding was enforced may be plain, non-JSON
    strings; those are returned unchanged.
    """
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.debug("Stored annotations are not JSON, returning raw string")
        return raw


def decode_texts(raw: Optional[str]) -> List[Any]:
    """Decode stored text overlays into an ordered list."""
    value = decode_annotations(raw)
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]
