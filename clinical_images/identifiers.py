"""Canonical form for encounter and patient identifiers."""

from typing import Any, Optional


def normalize_identifier(value: Any) -> Optional[str]:
    """Normalize an external identifier to a canonical string.

    Identifiers arrive as strings from form fields and URLs but as numbers
    from JSON bodies and foreign databases, so ``7``, ``7.0`` and ``" 7 "``
    all become ``"7"``. None and blank strings become None.
    """
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None
