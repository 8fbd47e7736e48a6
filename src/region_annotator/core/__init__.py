"""Core editing engine for Region Annotator."""

from .models import (
    Annotation, AnnotationDocument, BoxGeometry, ImageRecord, Label, PolygonGeometry, ShapeType
)
from .config import AppConfig, ConfigManager
from .edit_state import EditMode, EditState, EditStateMachine
from .undo_redo import UndoRedoManager
from .view_transform import ViewTransform
from .workspace import AnnotationWorkspace

__all__ = [
    "Annotation",
    "AnnotationDocument",
    "BoxGeometry",
    "ImageRecord",
    "Label",
    "PolygonGeometry",
    "ShapeType",
    "AppConfig",
    "ConfigManager",
    "EditMode",
    "EditState",
    "EditStateMachine",
    "UndoRedoManager",
    "ViewTransform",
    "AnnotationWorkspace",
]
