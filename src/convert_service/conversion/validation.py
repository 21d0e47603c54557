from collections.abc import Collection

from .errors import InvalidType, TooLarge


def normalize_mime(mime_type: str | None) -> str:
    """Lower-case a content type and drop parameters such as ``; charset=``."""
    return (mime_type or "").split(";", 1)[0].strip().lower()


def validate(mime_type: str | None, size_bytes: int, *, allowed_mime: Collection[str], max_bytes: int) -> None:
    """Check a candidate upload against the allow-list and the size ceiling.

    Raises InvalidType or TooLarge; returns None when the file is acceptable.
    """
    ct = normalize_mime(mime_type)
    if ct not in allowed_mime:
        raise InvalidType(f"content-type {mime_type or '<none>'} not allowed")
    if size_bytes > max_bytes:
        raise TooLarge(f"upload of {size_bytes} bytes exceeds {max_bytes} bytes")
