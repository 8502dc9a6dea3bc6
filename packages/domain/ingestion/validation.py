"""
Pre-flight checks for one uploaded file, run before anything reaches the OCR service
"""
from pathlib import Path
from typing import Optional

from packages.common.errors import ErrorKind, FileValidationError
from packages.parsers.ocr.base import SUPPORTED_MEDIA_TYPES

GENERIC_MEDIA_TYPES = {"", "application/octet-stream", "binary/octet-stream"}

MEDIA_TYPE_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
}

EXTENSION_MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".pdf": "application/pdf",
}


def resolve_media_type(filename: Optional[str], declared: Optional[str]) -> Optional[str]:
    """Declared content type, or the one implied by the file extension when the declared one is generic"""
    media_type = (declared or "").split(";", 1)[0].strip().lower()
    media_type = MEDIA_TYPE_ALIASES.get(media_type, media_type)

    if media_type in GENERIC_MEDIA_TYPES:
        suffix = Path(filename or "").suffix.lower()
        return EXTENSION_MEDIA_TYPES.get(suffix)
    return media_type


def validate_upload(
    filename: Optional[str],
    declared_type: Optional[str],
    data: bytes,
    max_bytes: int,
) -> str:
    """
    Validate an upload and return the media type to submit it with.

    Raises:
        FileValidationError: empty_file, file_too_large or invalid_type
    """
    if not data:
        raise FileValidationError("File is empty", ErrorKind.EMPTY_FILE)

    if len(data) > max_bytes:
        raise FileValidationError(
            f"File is {len(data)} bytes, limit is {max_bytes} bytes",
            ErrorKind.FILE_TOO_LARGE,
        )

    media_type = resolve_media_type(filename, declared_type)
    if media_type not in SUPPORTED_MEDIA_TYPES:
        raise FileValidationError(
            f"Unsupported file type {declared_type or 'unknown'}; "
            f"allowed: {', '.join(sorted(SUPPORTED_MEDIA_TYPES))}",
            ErrorKind.INVALID_TYPE,
        )
    return media_type
