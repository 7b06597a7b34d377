"""
Storage utilities for uploaded meal and menu images.
"""
import logging
import time
import uuid
from pathlib import Path
from typing import Optional, Union

from app.config import ALLOWED_IMAGE_TYPES, MAX_FILE_SIZE, UPLOAD_DIR

logger = logging.getLogger(__name__)

class StorageError(Exception):
    """Base class for storage-related errors."""
    pass

def get_upload_dir(upload_dir: Optional[Union[str, Path]] = None) -> Path:
    """Get the upload directory, creating it if needed."""
    path = Path(upload_dir or UPLOAD_DIR)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Could not create upload directory {path}: {e}")
        raise StorageError(f"Could not create upload directory {path}") from e
    return path

def validate_image_upload(data: bytes, mime_type: Optional[str]) -> None:
    """
    Check an uploaded image before it is analyzed or stored.

    Args:
        data: Raw file bytes
        mime_type: MIME type reported by the uploader

    Raises:
        StorageError: With a user-facing message when the upload is rejected
    """
    if not data:
        raise StorageError("Uploaded file is empty.")
    if len(data) > MAX_FILE_SIZE:
        limit_mb = MAX_FILE_SIZE / (1024 * 1024)
        raise StorageError(f"File too large. Maximum size is {limit_mb:.0f}MB.")
    if (mime_type or "").lower() not in ALLOWED_IMAGE_TYPES:
        raise StorageError("Invalid file type. Only JPEG, PNG, and WebP images are allowed.")

def save_temp_upload(data: bytes, filename: str,
                     upload_dir: Optional[Union[str, Path]] = None) -> Path:
    """
    Write an upload to the upload directory under a unique name.

    Args:
        data: Raw file bytes
        filename: Original filename; only its extension is kept

    Returns:
        Path of the stored file

    Raises:
        StorageError: If the file can't be written
    """
    suffix = Path(filename or "").suffix.lower() or ".jpg"
    target = get_upload_dir(upload_dir) / f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}{suffix}"
    try:
        target.write_bytes(data)
    except OSError as e:
        logger.error(f"Error saving upload {filename}: {e}")
        raise StorageError(f"Could not save {filename}") from e
    logger.info(f"Saved upload {filename} to {target}")
    return target

def delete_temp_file(path: Union[str, Path]) -> bool:
    """Delete a stored upload. Returns False if it was already gone."""
    try:
        Path(path).unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Could not delete temp file {path}: {e}")
        return False

def cleanup_old_uploads(max_age_hours: float = 24,
                        upload_dir: Optional[Union[str, Path]] = None) -> int:
    """
    Remove uploads older than max_age_hours.

    Returns:
        Number of files removed
    """
    cutoff = time.time() - max_age_hours * 3600
    removed = 0
    for path in get_upload_dir(upload_dir).iterdir():
        try:
            if path.is_file() and path.stat().st_mtime < cutoff:
                path.unlink()
                removed += 1
        except OSError as e:
            logger.warning(f"Could not remove old upload {path}: {e}")
    if removed:
        logger.info(f"Cleaned up {removed} old upload(s)")
    return removed
