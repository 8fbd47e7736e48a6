"""Mapping between image pixels and canvas pixels."""

from __future__ import annotations

import logging

from PyQt6.QtCore import QPointF, QRectF

from .models import FIT_MARGIN, MAX_SCALE, MIN_SCALE, ZOOM_STEP, clamp

logger = logging.getLogger(__name__)


class ViewTransform:
    """
    Zoom and pan state of the canvas.

    A canvas point c and an image point p are related by
    c = p * scale + offset on each axis.
    """

    def __init__(self, scale: float = 1.0, ox: float = 0.0, oy: float = 0.0) -> None:
        self.scale = clamp(scale, MIN_SCALE, MAX_SCALE)
        self.ox = ox
        self.oy = oy

    def __repr__(self) -> str:
        return f"ViewTransform(scale={self.scale!r}, ox={self.ox!r}, oy={self.oy!r})"

    def image_to_canvas(self, x: float, y: float) -> QPointF:
        return QPointF(x * self.scale + self.ox, y * self.scale + self.oy)

    def canvas_to_image(self, x: float, y: float) -> QPointF:
        return QPointF((x - self.ox) / self.scale, (y - self.oy) / self.scale)

    def canvas_to_image_length(self, length: float) -> float:
        return length / self.scale

    def image_to_canvas_length(self, length: float) -> float:
        return length * self.scale

    def image_rect(self, img_width: float, img_height: float) -> QRectF:
        """Canvas-space rectangle covered by the image."""
        return QRectF(self.ox, self.oy, img_width * self.scale, img_height * self.scale)

    def fit_to_contain(
        self,
        image_width: float,
        image_height: float,
        viewport_width: float,
        viewport_height: float
    ) -> None:
        """
        Scale the image to fit the viewport with a small margin and center it.

        Args:
            image_width: Image width in pixels
            image_height: Image height in pixels
            viewport_width: Canvas width in pixels
            viewport_height: Canvas height in pixels
        """
        if image_width <= 0 or image_height <= 0:
            logger.warning(f"Cannot fit empty image ({image_width}x{image_height})")
            return

        scale = min(viewport_width / image_width, viewport_height / image_height) * FIT_MARGIN
        self.scale = clamp(scale, MIN_SCALE, MAX_SCALE)
        self.ox = (viewport_width - image_width * self.scale) / 2
        self.oy = (viewport_height - image_height * self.scale) / 2

    def zoom_at(self, anchor_x: float, anchor_y: float, factor: float) -> None:
        """
        Rescale while keeping the image point under the anchor fixed.

        Args:
            anchor_x: Canvas x of the zoom anchor
            anchor_y: Canvas y of the zoom anchor
            factor: Multiplicative zoom factor
        """
        old = self.scale
        new = clamp(old * factor, MIN_SCALE, MAX_SCALE)
        ratio = new / old

        self.ox = anchor_x - (anchor_x - self.ox) * ratio
        self.oy = anchor_y - (anchor_y - self.oy) * ratio
        self.scale = new

    def zoom_in(self, anchor_x: float, anchor_y: float) -> None:
        self.zoom_at(anchor_x, anchor_y, ZOOM_STEP)

    def zoom_out(self, anchor_x: float, anchor_y: float) -> None:
        self.zoom_at(anchor_x, anchor_y, 1 / ZOOM_STEP)
