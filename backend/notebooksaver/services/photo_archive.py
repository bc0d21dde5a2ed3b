"""
NotebookSaver Backend — Photo Archive
=======================================

What:  Optionally keeps a copy of every captured page on disk.
Why:   Users who enable "save photos" want the original page alongside the
       transcription, e.g. to check a word the recognizer got wrong.
How:   Writes the original upload bytes to <photo_folder>/YYYY/MM/DD/<uuid>.<ext>
       with aiofiles so the event loop is not blocked on disk I/O.

Why UUID filenames inside date directories:
    - No collisions between concurrent captures
    - No user input in the path, so no traversal risk
    - Easy to back up or prune by day
"""

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

import aiofiles

from notebooksaver.exceptions import FileStorageError

logger = logging.getLogger(__name__)

# Pillow format name → file extension
_EXTENSIONS = {
    "JPEG": ".jpg",
    "PNG": ".png",
    "HEIF": ".heic",
    "WEBP": ".webp",
    "TIFF": ".tiff",
    "GIF": ".gif",
    "BMP": ".bmp",
}


def extension_for_format(image_format: Optional[str]) -> str:
    return _EXTENSIONS.get((image_format or "").upper(), ".jpg")


class PhotoArchive:
    def __init__(self, root: str):
        self.root = Path(root)

    def _generate_path(self, extension: str) -> Tuple[Path, str]:
        """(absolute path, path relative to the archive root) for a new photo."""
        date_dir = datetime.now(timezone.utc).strftime("%Y/%m/%d")
        relative = f"{date_dir}/{uuid.uuid4()}{extension}"
        return self.root / relative, relative

    async def save(self, content: bytes, extension: str = ".jpg") -> str:
        """
        Write one photo.

        Returns:
            The path relative to the archive root.

        Raises:
            FileStorageError: directory creation or write failed
        """
        absolute, relative = self._generate_path(extension)
        try:
            absolute.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to archive photo at %s: %s", absolute, e)
            self._discard(absolute)
            raise FileStorageError(
                message="Failed to save the captured photo",
                context={"path": str(absolute), "os_error": str(e)},
            ) from e
        logger.info("Archived photo %s (%d bytes)", relative, len(content))
        return relative

    @staticmethod
    def _discard(path: Path) -> None:
        """Remove a partial write. Failure here is logged, not raised."""
        try:
            if path.is_file():
                path.unlink()
                logger.info("Removed partial photo %s", path.name)
        except OSError as e:
            logger.warning("Failed to remove partial photo %s: %s", path, e)
