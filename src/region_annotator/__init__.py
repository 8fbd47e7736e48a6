"""
Region Annotator - draw boxes and polygons over images and export YOLO datasets.

Built with PyQt6. Regions are edited through an undoable command history,
saved to a JSON session and exported as YOLO detection or segmentation
archives.
"""

__version__ = "0.1.0"
