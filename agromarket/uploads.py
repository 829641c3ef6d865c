"""
Image asset management: validating, storing, addressing and removing uploads.
"""
import logging
import os
import secrets
from typing import Iterable, List, Optional, Sequence, Tuple

from fastapi import Request, UploadFile
from werkzeug.utils import secure_filename

from .errors import ValidationError
from .utils import epoch_millis

logger = logging.getLogger(__name__)

URL_PREFIX = "uploads"

LISTING_IMAGE_TYPES = ("jpeg", "jpg", "png", "gif")
DISCUSSION_IMAGE_TYPES = ("jpeg", "jpg", "png", "gif", "webp")


def is_allowed_image(filename: str, content_type: Optional[str], allowed: Sequence[str]) -> bool:
    """Both the extension and the declared content type must name an allowed type."""
    ext = os.path.splitext(filename or "")[1].lower().lstrip(".")
    mime = (content_type or "").lower()
    return ext in allowed and any(kind in mime for kind in allowed)


def public_url(request: Request, stored_path: str) -> str:
    """Absolute URL of a stored path, built from the current request's scheme and host."""
    host = request.headers.get("host") or request.url.netloc
    path = stored_path.replace("\\", "/").lstrip("/")
    return f"{request.url.scheme}://{host}/{path}"


class ImageStore:
    """Keeps uploaded images in a single directory served under ``/uploads``."""

    def __init__(self, upload_dir: str, max_bytes: int = 5 * 1024 * 1024):
        self.upload_dir = upload_dir
        self.max_bytes = max_bytes

    def ensure_dir(self) -> None:
        os.makedirs(self.upload_dir, exist_ok=True)

    async def _read(self, upload: UploadFile, allowed: Sequence[str], type_error: str) -> bytes:
        if not is_allowed_image(upload.filename, upload.content_type, allowed):
            raise ValidationError(type_error)
        data = await upload.read(self.max_bytes + 1)
        if len(data) > self.max_bytes:
            raise ValidationError(
                f"File too large: {upload.filename} exceeds {self.max_bytes // (1024 * 1024)} MB"
            )
        return data

    def _file_name(self, original: str, prefix: Optional[str]) -> str:
        stem, ext = os.path.splitext(original)
        if prefix is None:
            prefix = secure_filename(stem) or "image"
        return f"{prefix}-{epoch_millis()}-{secrets.token_hex(3)}{ext.lower()}"

    async def save_all(
        self,
        uploads: Iterable[UploadFile],
        allowed: Sequence[str],
        type_error: str,
        prefix: Optional[str] = None,
    ) -> List[str]:
        """Validate every upload, then write them; returns ``uploads/<file>`` paths.

        Nothing is written when any file is rejected.
        """
        staged: List[Tuple[str, bytes]] = []
        for upload in uploads:
            if not upload.filename:
                continue
            data = await self._read(upload, allowed, type_error)
            staged.append((self._file_name(upload.filename, prefix), data))

        self.ensure_dir()
        stored = []
        for name, data in staged:
            with open(os.path.join(self.upload_dir, name), "wb") as fh:
                fh.write(data)
            stored.append(f"{URL_PREFIX}/{name}")
            logger.debug(f"Stored upload {name} ({len(data)} bytes)")
        return stored

    def disk_path(self, stored_path: str) -> Optional[str]:
        """Map a stored path onto the upload directory; only the file name is trusted."""
        name = os.path.basename(stored_path.replace("\\", "/").rstrip("/"))
        if not name or name in (".", ".."):
            return None
        return os.path.join(self.upload_dir, name)

    def remove(self, stored_path: str) -> None:
        """Delete one stored file; failures are logged, never raised."""
        path = self.disk_path(stored_path)
        if path is None:
            logger.warning(f"Refusing to delete unrecognised image path: {stored_path!r}")
            return
        try:
            os.remove(path)
            logger.info(f"Image file deleted: {path}")
        except OSError as e:
            logger.warning(f"Failed to delete image file {path}: {e}")

    def remove_all(self, stored_paths: Iterable[str]) -> None:
        for stored_path in stored_paths:
            self.remove(stored_path)
