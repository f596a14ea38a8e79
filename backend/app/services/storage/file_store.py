"""
File Store

Writes uploaded image files to disk and hands the review pipeline an
already-stored descriptor. Content scanning happens upstream.
"""
import logging
import os
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional

from ...errors import ValidationError

logger = logging.getLogger(__name__)

UPLOAD_DIR = os.getenv("UPLOAD_DIR", os.path.join(os.getcwd(), "uploads", "images"))
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

ALLOWED_MIME_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
}
ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class StoredFile:
    """Descriptor of a file that is already on disk."""
    filename: str
    original_filename: str
    path: str
    size: int
    mime_type: str


class FileStore:
    """Local-disk storage for uploaded images."""

    def __init__(self, upload_dir: Optional[str] = None, max_bytes: int = MAX_UPLOAD_BYTES):
        self.upload_dir = Path(upload_dir or UPLOAD_DIR)
        self.max_bytes = max_bytes

    def save(self, stream: BinaryIO, original_filename: str, mime_type: str) -> StoredFile:
        """
        Validate type and extension, then write the stream under a generated name.

        Raises ValidationError for disallowed types or oversized files.
        """
        extension = Path(original_filename or "").suffix.lower()
        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                f"Invalid file type. Allowed types: {', '.join(sorted(ALLOWED_MIME_TYPES))}"
            )
        if extension not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                f"Invalid file extension. Allowed extensions: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
            )

        self.upload_dir.mkdir(parents=True, exist_ok=True)
        filename = f"{int(time.time() * 1000)}-{secrets.token_hex(8)}{extension}"
        path = self.upload_dir / filename

        # Stop as soon as the limit is passed; the partial file is removed
        size = 0
        with open(path, "wb") as buffer:
            while True:
                chunk = stream.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > self.max_bytes:
                    break
                buffer.write(chunk)

        if size > self.max_bytes:
            path.unlink()
            logger.warning(f"Rejected upload '{original_filename}': over {self.max_bytes} bytes")
            raise ValidationError(f"File exceeds maximum size of {self.max_bytes} bytes")

        return StoredFile(
            filename=filename,
            original_filename=original_filename,
            path=str(path),
            size=size,
            mime_type=mime_type,
        )

    def delete(self, filename: str) -> None:
        """Remove a stored file; a missing file is not an error."""
        try:
            (self.upload_dir / filename).unlink()
        except FileNotFoundError:
            pass
        except OSError:
            logger.exception(f"Failed to delete stored file {filename}")
