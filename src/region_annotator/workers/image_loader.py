"""Background image decoding."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from PyQt6.QtCore import QThread, pyqtSignal
from PyQt6.QtGui import QImageReader

from ..core.models import ImageRecord

logger = logging.getLogger(__name__)

# Supported image extensions
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".gif", ".webp"}


def is_image_file(path: Path) -> bool:
    """Check if a file has a supported image extension."""
    return Path(path).suffix.lower() in IMAGE_EXTENSIONS


def decode_image(file_path: Path) -> Optional[ImageRecord]:
    """
    Decode an image file into an ImageRecord.

    Args:
        file_path: Path to the image file

    Returns:
        ImageRecord with pixel data and size, or None on failure
    """
    file_path = Path(file_path)
    reader = QImageReader(str(file_path))
    reader.setAutoTransform(True)
    image = reader.read()

    if image.isNull():
        logger.warning(f"Failed to load image {file_path}: {reader.errorString()}")
        return None

    return ImageRecord(
        name=file_path.name,
        width=image.width(),
        height=image.height(),
        image=image,
        source_path=str(file_path),
    )


class ImageLoader(QThread):
    """
    Background thread decoding imported image files.

    Emits each decoded record so the GUI thread can add it to the
    workspace as it arrives.
    """

    # Signal emitted when an image is decoded (ImageRecord)
    image_loaded = pyqtSignal(object)

    # Signal emitted when a file cannot be decoded (path, reason)
    failed = pyqtSignal(str, str)

    # Signal emitted when all files are processed (decoded count)
    finished_loading = pyqtSignal(int)

    # Signal for progress updates (current, total)
    progress = pyqtSignal(int, int)

    def __init__(self, file_paths: Sequence[Path]) -> None:
        """
        Initialize the image loader.

        Args:
            file_paths: Image files to decode, in import order
        """
        super().__init__()
        self.file_paths = [Path(p) for p in file_paths]
        self._is_running = True

    def run(self) -> None:
        """Decode images in the background thread."""
        total = len(self.file_paths)
        loaded = 0

        for index, file_path in enumerate(self.file_paths, 1):
            if not self._is_running:
                logger.info("Image loading cancelled")
                break

            if not is_image_file(file_path):
                self.failed.emit(str(file_path), "unsupported file type")
                continue

            record = decode_image(file_path)
            if record is None:
                self.failed.emit(str(file_path), "could not decode")
            else:
                self.image_loaded.emit(record)
                loaded += 1
            self.progress.emit(index, total)

        self.finished_loading.emit(loaded)
        logger.info(f"Image loading complete: {loaded} images")

    def stop(self) -> None:
        """Request the loader to stop."""
        self._is_running = False


def get_image_files(directory: Path) -> List[Path]:
    """
    Get the image files in a directory, sorted by name.

    Args:
        directory: Directory to scan

    Returns:
        List of image file paths
    """
    directory = Path(directory)
    if not directory.is_dir():
        return []

    return sorted(f for f in directory.iterdir() if f.is_file() and is_image_file(f))
