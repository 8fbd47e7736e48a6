"""YOLO detection/segmentation rows and dataset archive export."""

from __future__ import annotations

import io
import json
import logging
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import yaml
from PyQt6.QtCore import QBuffer, QByteArray, QIODevice, QPointF, QRectF
from PyQt6.QtGui import QColor, QImage, QPainter, QPen, QPolygonF

from .config import YOLODatasetConfig
from .models import (
    DEFAULT_COLOR, MIN_BBOX_SIZE_IMG, AnnotationDocument, BoxGeometry, ImageRecord,
    PolygonGeometry, ShapeType
)

logger = logging.getLogger(__name__)

YoloRow = Tuple[float, ...]

ARCHIVE_NAMES = {
    ShapeType.BOX: "dataset_bbox.zip",
    ShapeType.POLYGON: "dataset_polygon.zip",
}

LABEL_FORMATS = {
    ShapeType.BOX: "YOLO Detect: class x_center y_center width height (normalized)",
    ShapeType.POLYGON: "YOLO Seg: class x1 y1 x2 y2 ... (normalized polygon vertices)",
}


class ExportError(Exception):
    """Raised when a dataset cannot be exported."""


def _unit(value: float) -> float:
    return max(0.0, min(1.0, value))


def box_to_yolo(box: BoxGeometry, img_width: int, img_height: int, class_index: int) -> YoloRow:
    """
    Convert a box to a normalized YOLO detection row.

    Returns:
        Tuple of (class_index, x_center, y_center, width, height), each
        coordinate clamped to [0, 1]
    """
    x_center = (box.x + box.w / 2) / img_width
    y_center = (box.y + box.h / 2) / img_height
    width = box.w / img_width
    height = box.h / img_height
    return (class_index, _unit(x_center), _unit(y_center), _unit(width), _unit(height))


def polygon_to_yolo(
    points: Sequence[QPointF],
    img_width: int,
    img_height: int,
    class_index: int
) -> YoloRow:
    """
    Convert polygon vertices to a normalized YOLO segmentation row.

    Returns:
        Tuple of (class_index, x1, y1, x2, y2, ...) clamped to [0, 1]
    """
    coords: List[float] = []
    for p in points:
        coords.append(_unit(p.x() / img_width))
        coords.append(_unit(p.y() / img_height))
    return (class_index, *coords)


def format_yolo_line(row: YoloRow) -> str:
    class_index, *coords = row
    return " ".join([str(int(class_index))] + [f"{v:.6f}" for v in coords])


def collect_export_rows(
    document: AnnotationDocument,
    image: ImageRecord,
    shape_type: ShapeType
) -> List[YoloRow]:
    """
    Build the YOLO rows of one image for one shape kind.

    Annotations of the other kind, with an unresolved label, boxes below
    the minimum size and polygons with fewer than 3 points are skipped.
    """
    rows: List[YoloRow] = []

    for ann in image.annotations:
        if ann.type != shape_type:
            continue

        class_index = document.label_of(ann).index
        if class_index is None:
            continue

        geometry = ann.geometry
        if isinstance(geometry, BoxGeometry):
            if geometry.w < MIN_BBOX_SIZE_IMG or geometry.h < MIN_BBOX_SIZE_IMG:
                continue
            rows.append(box_to_yolo(geometry, image.width, image.height, class_index))
        elif isinstance(geometry, PolygonGeometry):
            if len(geometry) < 3:
                continue
            rows.append(polygon_to_yolo(geometry.points, image.width, image.height, class_index))

    return rows


def render_annotated_image(image: ImageRecord, shape_type: ShapeType) -> Optional[bytes]:
    """
    Draw the annotations of one kind over the image.

    Returns:
        PNG bytes, or None if the image has no decoded pixels
    """
    if image.image is None or image.image.isNull():
        return None

    canvas = image.image.convertToFormat(QImage.Format.Format_ARGB32)
    painter = QPainter(canvas)
    try:
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        for ann in image.annotations:
            if ann.type != shape_type:
                continue

            color = QColor(ann.color or DEFAULT_COLOR)
            fill = QColor(color)
            painter.setPen(QPen(color, 3))

            geometry = ann.geometry
            if isinstance(geometry, BoxGeometry):
                fill.setAlphaF(0.12)
                painter.setBrush(fill)
                painter.drawRect(QRectF(geometry.x, geometry.y, geometry.w, geometry.h))
            elif isinstance(geometry, PolygonGeometry) and len(geometry) >= 3:
                fill.setAlphaF(0.10)
                painter.setBrush(fill)
                painter.drawPolygon(QPolygonF(list(geometry.points)))
    finally:
        painter.end()

    data = QByteArray()
    buffer = QBuffer(data)
    buffer.open(QIODevice.OpenModeFlag.WriteOnly)
    canvas.save(buffer, "PNG")
    buffer.close()
    return bytes(data)


class DatasetExporter:
    """
    Writes a YOLO dataset ZIP for one shape kind.

    Layout:
        images/<name>                 original image files
        labels/<base>.txt             one YOLO row per annotation
        annotated_images/<base>.png   preview with the exported shapes drawn
        meta/classes.txt, meta/summary.json
        dataset.yaml
    """

    def __init__(self, document: AnnotationDocument) -> None:
        self.document = document

    def dataset_config(self) -> YOLODatasetConfig:
        return YOLODatasetConfig(class_names=[lbl.name for lbl in self.document.labels])

    def export(
        self,
        target: Path,
        shape_type: ShapeType,
        render_previews: bool = True
    ) -> Path:
        """
        Export the dataset.

        Args:
            target: Directory (archive gets its default name) or .zip path
            shape_type: Which annotations to export
            render_previews: Whether to include annotated_images/

        Returns:
            Path of the written archive
        """
        shape_type = ShapeType(shape_type)
        if not self.document.images:
            raise ExportError("No images to export.")
        if not self.document.labels:
            raise ExportError("No labels available. Add labels first.")

        target = Path(target)
        if target.suffix.lower() != ".zip":
            target = target / ARCHIVE_NAMES[shape_type]

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with zipfile.ZipFile(target, "w", zipfile.ZIP_DEFLATED) as archive:
                self._write_meta(archive, shape_type)
                for image in self.document.images:
                    self._write_image(archive, image, shape_type, render_previews)
        except OSError as e:
            logger.error(f"Error writing dataset archive {target}: {e}")
            raise ExportError(f"Could not write {target}: {e}") from e

        logger.info(f"Exported {len(self.document.images)} images to {target}")
        return target

    def _write_meta(self, archive: zipfile.ZipFile, shape_type: ShapeType) -> None:
        classes = [lbl.name for lbl in self.document.labels]
        summary = {
            "createdAt": datetime.now(timezone.utc).isoformat(),
            "chosenType": shape_type.value,
            "totalImages": len(self.document.images),
            "totalClasses": len(classes),
            "labelFormat": LABEL_FORMATS[shape_type],
        }

        archive.writestr("meta/classes.txt", "\n".join(classes))
        archive.writestr("meta/summary.json", json.dumps(summary, indent=2))

        stream = io.StringIO()
        yaml.safe_dump(self.dataset_config().to_dict(), stream, sort_keys=False)
        archive.writestr("dataset.yaml", stream.getvalue())

    def _write_image(
        self,
        archive: zipfile.ZipFile,
        image: ImageRecord,
        shape_type: ShapeType,
        render_previews: bool
    ) -> None:
        base = Path(image.name).stem

        if image.source_path:
            source = Path(image.source_path)
            if source.is_file():
                archive.write(source, f"images/{image.name}")
            else:
                logger.warning(f"Source file missing, not archived: {source}")

        rows = collect_export_rows(self.document, image, shape_type)
        archive.writestr(f"labels/{base}.txt", "\n".join(format_yolo_line(r) for r in rows))

        if render_previews:
            preview = render_annotated_image(image, shape_type)
            if preview is not None:
                archive.writestr(f"annotated_images/{base}.png", preview)
