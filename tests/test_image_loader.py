"""Tests for image decoding."""

import pytest
from PyQt6.QtGui import QColor, QImage

from region_annotator.workers.image_loader import (
    ImageLoader,
    decode_image,
    get_image_files,
    is_image_file,
)


@pytest.fixture
def png_file(qapp, tmp_path):
    image = QImage(40, 30, QImage.Format.Format_RGB32)
    image.fill(QColor("red"))
    path = tmp_path / "frame.png"
    assert image.save(str(path))
    return path


class TestDecode:
    """Tests for single-file decoding."""

    def test_decode(self, png_file):
        record = decode_image(png_file)

        assert record.name == "frame.png"
        assert (record.width, record.height) == (40, 30)
        assert record.source_path == str(png_file)
        assert record.annotations == []

    def test_decode_garbage(self, qapp, tmp_path):
        path = tmp_path / "broken.png"
        path.write_bytes(b"not an image")

        assert decode_image(path) is None

    def test_is_image_file(self):
        assert is_image_file("a.JPG")
        assert is_image_file("b.webp")
        assert not is_image_file("notes.txt")


class TestImageLoader:
    """Tests for the loader run loop, executed on the calling thread."""

    def test_run_emits_records_and_failures(self, png_file, tmp_path):
        text = tmp_path / "notes.txt"
        text.write_text("x")
        broken = tmp_path / "broken.jpg"
        broken.write_bytes(b"nope")

        loader = ImageLoader([png_file, text, broken])
        loaded, failed, progress, finished = [], [], [], []
        loader.image_loaded.connect(loaded.append)
        loader.failed.connect(lambda path, reason: failed.append((path, reason)))
        loader.progress.connect(lambda current, total: progress.append((current, total)))
        loader.finished_loading.connect(finished.append)

        loader.run()

        assert [r.name for r in loaded] == ["frame.png"]
        assert failed == [
            (str(text), "unsupported file type"),
            (str(broken), "could not decode"),
        ]
        assert progress == [(1, 3), (3, 3)]
        assert finished == [1]

    def test_stop_before_run(self, png_file):
        loader = ImageLoader([png_file])
        finished = []
        loader.finished_loading.connect(finished.append)

        loader.stop()
        loader.run()

        assert finished == [0]


class TestGetImageFiles:
    """Tests for directory scanning."""

    def test_sorted_and_filtered(self, tmp_path):
        for name in ["b.png", "a.jpg", "c.txt"]:
            (tmp_path / name).write_bytes(b"")
        (tmp_path / "sub.png").mkdir()

        assert [p.name for p in get_image_files(tmp_path)] == ["a.jpg", "b.png"]

    def test_missing_directory(self, tmp_path):
        assert get_image_files(tmp_path / "missing") == []
