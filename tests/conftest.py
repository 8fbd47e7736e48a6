"""Pytest configuration and fixtures."""

import os
import pytest
import sys
from pathlib import Path

from PyQt6.QtCore import QPointF

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Tests never open windows
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from region_annotator.core.models import (  # noqa: E402
    Annotation, AnnotationDocument, BoxGeometry, ImageRecord, Label
)
from region_annotator.core.view_transform import ViewTransform  # noqa: E402


@pytest.fixture(scope="session")
def qapp():
    """Create a QApplication for tests that need it."""
    from PyQt6.QtWidgets import QApplication

    app = QApplication.instance()
    if app is None:
        app = QApplication([])

    yield app


@pytest.fixture
def temp_dir(tmp_path):
    """Provide a temporary directory for tests."""
    return tmp_path


@pytest.fixture
def image():
    """A 200x150 image record without pixel data."""
    return ImageRecord(name="street.jpg", width=200, height=150)


@pytest.fixture
def square_image():
    """A 100x100 image record without pixel data."""
    return ImageRecord(name="square.png", width=100, height=100)


@pytest.fixture
def labels():
    """Three labels; 'truck' has class index 2."""
    return [
        Label(name="car", color="#ef4444", id="lbl-car"),
        Label(name="bus", color="#22c55e", id="lbl-bus"),
        Label(name="truck", color="#3b82f6", id="lbl-truck"),
    ]


@pytest.fixture
def document(image, labels):
    """A document holding the 200x150 image and three labels."""
    return AnnotationDocument(images=[image], labels=list(labels))


@pytest.fixture
def identity_view():
    """A view where canvas and image pixels coincide."""
    return ViewTransform(scale=1.0, ox=0.0, oy=0.0)


@pytest.fixture
def box_annotation():
    """A truck box at (20, 30) sized 60x40."""
    return Annotation.box(BoxGeometry(20, 30, 60, 40), label_id="lbl-truck", id="ann-box")


@pytest.fixture
def triangle_annotation():
    """A car triangle inside the 200x150 image."""
    return Annotation.polygon(
        [QPointF(100, 20), QPointF(180, 20), QPointF(140, 100)],
        label_id="lbl-car",
        id="ann-tri",
    )
