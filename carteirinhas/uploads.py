from __future__ import annotations
import logging
from io import BytesIO
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from . import settings
from .errors import InputValidationError, StorageError
from .models import Side
from .utils import ensure_dir, safe_filename

logger = logging.getLogger(__name__)

ALLOWED_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
}

def check_image_upload(content: bytes, content_type: Optional[str], max_bytes: Optional[int] = None) -> Tuple[str, Tuple[int, int]]:
    """
    Valida un fichero de imagen antes de tocar nada.
    Returns: (extensión, (ancho, alto))
    """
    limit = settings.MAX_UPLOAD_BYTES if max_bytes is None else max_bytes
    ctype = (content_type or "").lower()
    if not ctype.startswith("image/"):
        raise InputValidationError("Please select an image file")
    if ctype not in ALLOWED_TYPES:
        raise InputValidationError("Unsupported image format (PNG or JPEG only)")
    if len(content) > limit:
        raise InputValidationError(f"Image too large. Maximum {limit // (1024 * 1024)}MB")
    if not content:
        raise InputValidationError("Empty file")

    try:
        with Image.open(BytesIO(content)) as img:
            size = img.size
            img.verify()
    except (UnidentifiedImageError, OSError) as e:
        raise InputValidationError("File is not a valid image") from e

    return ALLOWED_TYPES[ctype], size

class ImageStore:
    """
    Imágenes de fondo de las plantillas en disco:
    <media>/templates/<template_id>/<side>.<ext>, servidas bajo MEDIA_URL
    """
    def __init__(self, root: Path, public_url: str = "/media"):
        self.root = Path(root)
        self.public_url = public_url.rstrip("/")
        ensure_dir(self.root)

    def _dir(self, template_id: str) -> Path:
        return self.root / "templates" / safe_filename(template_id)

    def upload(self, template_id: str, content: bytes, content_type: Optional[str], side: Side) -> str:
        ext, size = check_image_upload(content, content_type)
        d = self._dir(template_id)
        try:
            ensure_dir(d)
            # un solo fichero por lado
            for old in d.glob(f"{side}.*"):
                old.unlink()
            out = d / f"{side}{ext}"
            out.write_bytes(content)
        except OSError as e:
            logger.error(f"Upload failed for {template_id}/{side}: {e}")
            raise StorageError("Could not store image") from e

        logger.info(f"Image stored: {out} ({size[0]}x{size[1]})")
        return f"{self.public_url}/templates/{d.name}/{out.name}"

    def delete(self, template_id: str, side: Side) -> None:
        d = self._dir(template_id)
        try:
            for old in d.glob(f"{side}.*"):
                old.unlink()
        except OSError as e:
            raise StorageError("Could not delete image") from e
        logger.info(f"Image deleted: {template_id}/{side}")
