"""Upload rules for claim supporting documents."""

from __future__ import annotations

import io
from typing import Optional

from PIL import Image, UnidentifiedImageError

MAX_FILE_SIZE_BYTES = 100 * 1024 * 1024
MAX_FILES_PER_CATEGORY = 5

ALLOWED_FILE_TYPES = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/bmp": ".bmp",
    "image/tiff": ".tiff",
    "application/pdf": ".pdf",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "application/vnd.ms-excel": ".xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
    "text/plain": ".txt",
    "text/csv": ".csv",
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
    "video/x-msvideo": ".avi",
    "audio/mpeg": ".mp3",
    "audio/wav": ".wav",
    "audio/x-m4a": ".m4a",
    "audio/mp4": ".m4a",
}

# Pillow format names accepted for each image MIME type.
_IMAGE_FORMATS = {
    "image/jpeg": {"JPEG", "MPO"},
    "image/jpg": {"JPEG", "MPO"},
    "image/png": {"PNG"},
    "image/gif": {"GIF"},
    "image/webp": {"WEBP"},
    "image/bmp": {"BMP", "DIB"},
    "image/tiff": {"TIFF"},
}

PREVIEW_IMAGE_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp", "image/svg+xml"}


def validate_upload(
    filename: Optional[str],
    content_type: Optional[str],
    size: int,
    max_size: int = MAX_FILE_SIZE_BYTES,
) -> list[str]:
    """Return a list of problems with the file; empty when it may be stored."""
    errors: list[str] = []
    name = (filename or "").strip()
    if not name:
        errors.append("File name is required.")
    elif ".." in name or "/" in name or "\\" in name:
        errors.append("Invalid file name.")

    if size <= 0:
        errors.append("File is empty.")
    elif size > max_size:
        errors.append(f"File size must be less than {format_file_size(max_size)}.")

    if (content_type or "").lower() not in ALLOWED_FILE_TYPES:
        errors.append(
            "File type not allowed. Please upload images, PDFs, Word or Excel documents, "
            "text files, or common audio/video formats."
        )
    return errors


def check_image_content(content_type: str, data: bytes) -> Optional[str]:
    """Make sure image uploads decode as the format they claim to be."""
    expected = _IMAGE_FORMATS.get((content_type or "").lower())
    if not expected:
        return None
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.verify()
            detected = image.format
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return "The image file appears to be corrupted."
    if detected not in expected:
        return "File content does not match its type."
    return None


def preview_kind(file_type: Optional[str]) -> str:
    """Pick the viewer for a stored document: image, pdf, text or other."""
    kind = (file_type or "").lower()
    if kind in PREVIEW_IMAGE_TYPES:
        return "image"
    if kind == "application/pdf":
        return "pdf"
    if kind.startswith("text/"):
        return "text"
    return "other"


def extension_for(filename: str, content_type: str) -> str:
    if "." in filename:
        ext = filename.rsplit(".", 1)[1].lower()
        if ext.isalnum():
            return ext
    return ALLOWED_FILE_TYPES.get(content_type.lower(), ".bin").lstrip(".")


def format_file_size(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {units[index]}"
