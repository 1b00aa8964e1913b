from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path

from .errors import UnsupportedImage

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = re.compile(r"jpeg|jpg|png|gif")


def is_allowed_image(filename: str | None, content_type: str | None) -> bool:
    """Both the MIME type and the extension have to look like an image."""
    if not filename or not content_type:
        return False
    suffix = Path(filename).suffix.lower()
    return bool(ALLOWED_IMAGE_TYPES.search(content_type)) and bool(ALLOWED_IMAGE_TYPES.search(suffix))


@dataclass(frozen=True)
class ImageUpload:
    filename: str
    content_type: str
    data: bytes

    @classmethod
    def accept(cls, filename: str | None, content_type: str | None, data: bytes) -> "ImageUpload":
        if not is_allowed_image(filename, content_type):
            raise UnsupportedImage()
        return cls(filename=filename, content_type=content_type, data=data)


class ImageStorage:
    """
    The content directory. Files are written as ``<epoch millis>-<original name>``
    and addressed publicly as ``<url_prefix>/<stored name>``.
    """

    def __init__(self, directory: Path, url_prefix: str = "/uploads"):
        self.directory = Path(directory)
        self.url_prefix = url_prefix.rstrip("/")

    def public_path(self, name: str) -> str:
        return f"{self.url_prefix}/{name}"

    def resolve(self, image_path: str) -> Path:
        # only the basename counts: a stored path can never leave the directory
        return self.directory / Path(image_path).name

    def save(self, upload: ImageUpload) -> str:
        self.directory.mkdir(parents=True, exist_ok=True)

        original = Path(upload.filename).name
        stamp = int(time.time() * 1000)
        while True:
            file_path = self.directory / f"{stamp}-{original}"
            try:
                # "x" fails if the name is taken, so two uploads never share a file
                with open(file_path, "xb") as f:
                    f.write(upload.data)
                break
            except FileExistsError:
                stamp += 1

        logger.info("Stored upload %s (%d bytes)", file_path.name, len(upload.data))
        return self.public_path(file_path.name)

    def remove(self, image_path: str) -> bool:
        """Best effort. A missing file or an OS error is logged, never raised."""
        file_path = self.resolve(image_path)
        try:
            file_path.unlink()
        except FileNotFoundError:
            logger.debug("Image already gone: %s", file_path)
            return False
        except OSError as exc:
            logger.warning("Could not remove image %s: %s", file_path, exc)
            return False
        logger.info("Removed image %s", file_path.name)
        return True

    def stored_files(self) -> list[Path]:
        if not self.directory.is_dir():
            return []
        return sorted(p for p in self.directory.iterdir() if p.is_file())
