"""Tests for the undo/redo command history."""

import pytest

from region_annotator.core.models import Annotation, BoxGeometry, ImageRecord, Label
from region_annotator.core.undo_redo import (
    AddAnnotationCommand,
    AddLabelCommand,
    Command,
    DeleteAnnotationCommand,
    DeleteLabelCommand,
    DeleteLabelGroupCommand,
    RemoveImageCommand,
    ReplaceAnnotationCommand,
    ToggleLabelFlagCommand,
    UndoRedoManager,
)


@pytest.fixture
def manager(qapp):
    return UndoRedoManager()


def document_state(document):
    """Comparable deep copy of everything commands may touch."""
    return (
        [(img.id, [a.snapshot() for a in img.annotations]) for img in document.images],
        list(document.labels),
        set(document.label_hidden),
        set(document.label_locked),
        document.active_label_id,
    )


class TestRoundTrips:
    """Every command satisfies revert(apply(s)) == s and redo == apply."""

    def build_factories(self, document, image, box_annotation, triangle_annotation):
        """Commands are built lazily so each captures the state it runs on."""
        image.annotations.extend([box_annotation, triangle_annotation])

        def replace_box():
            moved = box_annotation.snapshot()
            moved.geometry = BoxGeometry(0, 0, 10, 10)
            return ReplaceAnnotationCommand(image, box_annotation, moved)

        return [
            lambda: AddAnnotationCommand(image, Annotation.box(BoxGeometry(1, 1, 5, 5))),
            replace_box,
            lambda: DeleteAnnotationCommand(image, box_annotation),
            lambda: AddLabelCommand(document, Label(name="van")),
            lambda: DeleteLabelCommand(document, document.labels[0]),
            lambda: ToggleLabelFlagCommand(document, "lbl-car", "hidden"),
            lambda: ToggleLabelFlagCommand(document, "lbl-car", "locked"),
            lambda: DeleteLabelGroupCommand(image, "lbl-car"),
            lambda: RemoveImageCommand(document, image),
        ]

    def test_round_trip(self, manager, document, image, box_annotation, triangle_annotation):
        factories = self.build_factories(document, image, box_annotation, triangle_annotation)

        for factory in factories:
            command = factory()
            before = document_state(document)
            manager.commit(command)
            after = document_state(document)
            assert after != before, command.description

            manager.undo()
            assert document_state(document) == before, command.description

            manager.redo()
            assert document_state(document) == after, command.description

    def test_apply_and_revert_are_idempotent(self, document, image, box_annotation, triangle_annotation):
        factories = self.build_factories(document, image, box_annotation, triangle_annotation)

        for factory in factories:
            command = factory()
            command.apply()
            applied = document_state(document)
            command.apply()
            assert document_state(document) == applied, command.description

            command.revert()
            reverted = document_state(document)
            command.revert()
            assert document_state(document) == reverted, command.description
            command.apply()


class TestCommands:
    """Tests for individual command behavior."""

    def test_delete_restores_index(self, manager, image, box_annotation, triangle_annotation):
        image.annotations.extend([box_annotation, triangle_annotation])

        manager.commit(DeleteAnnotationCommand(image, box_annotation))
        assert [a.id for a in image.annotations] == ["ann-tri"]

        manager.undo()
        assert [a.id for a in image.annotations] == ["ann-box", "ann-tri"]

    def test_add_label_becomes_active(self, manager, document):
        document.active_label_id = "lbl-bus"
        label = Label(name="van")

        manager.commit(AddLabelCommand(document, label))
        assert document.active_label_id == label.id

        manager.undo()
        assert document.active_label_id == "lbl-bus"
        assert document.find_label(label.id) is None

    def test_delete_label_keeps_annotations(self, manager, document, image):
        """Deleting a label referenced by three annotations keeps all three."""
        for i in range(3):
            image.annotations.append(Annotation.box(BoxGeometry(i, i, 5, 5), label_id="lbl-bus"))
        document.active_label_id = "lbl-bus"
        document.label_locked.add("lbl-bus")

        manager.commit(DeleteLabelCommand(document, document.labels[1]))

        assert len(image.annotations) == 3
        assert all(not document.label_of(a).resolved for a in image.annotations)
        assert document.active_label_id is None
        assert "lbl-bus" not in document.label_locked

        manager.undo()

        assert [lbl.id for lbl in document.labels] == ["lbl-car", "lbl-bus", "lbl-truck"]
        assert document.active_label_id == "lbl-bus"
        assert "lbl-bus" in document.label_locked
        assert all(document.label_of(a).index == 1 for a in image.annotations)

    def test_toggle_label_flag(self, manager, document):
        manager.commit(ToggleLabelFlagCommand(document, "lbl-car", "hidden"))
        assert document.is_label_hidden("lbl-car")

        manager.commit(ToggleLabelFlagCommand(document, "lbl-car", "hidden"))
        assert not document.is_label_hidden("lbl-car")

        manager.undo()
        assert document.is_label_hidden("lbl-car")

    def test_toggle_label_flag_rejects_unknown_flag(self, document):
        with pytest.raises(ValueError):
            ToggleLabelFlagCommand(document, "lbl-car", "pinned")

    def test_delete_label_group(self, manager, image, box_annotation, triangle_annotation):
        image.annotations.extend([box_annotation, triangle_annotation])
        command = DeleteLabelGroupCommand(image, "lbl-car")

        assert command.removed_count == 1
        assert command.description == "Delete 1 Region"

        manager.commit(command)
        assert [a.id for a in image.annotations] == ["ann-box"]

    def test_remove_image_restores_position(self, manager, document, image):
        other = ImageRecord(name="b.jpg", width=10, height=10)
        document.images.append(other)

        manager.commit(RemoveImageCommand(document, image))
        assert document.images == [other]

        manager.undo()
        assert [img.id for img in document.images] == [image.id, other.id]

    def test_missing_reference_is_skipped(self, manager, document, image, box_annotation):
        """Redo after the target vanished does nothing instead of failing."""
        image.annotations.append(box_annotation)
        moved = box_annotation.snapshot()
        moved.geometry = BoxGeometry(0, 0, 10, 10)

        manager.commit(ReplaceAnnotationCommand(image, box_annotation, moved))
        manager.undo()
        image.annotations.clear()

        assert manager.redo() is True
        assert image.annotations == []


class FailingCommand(Command):
    """Command whose revert raises."""

    def apply(self) -> None:
        pass

    def revert(self) -> None:
        raise RuntimeError("storage gone")

    @property
    def description(self) -> str:
        return "Fail"


class TestUndoRedoManager:
    """Tests for the UndoRedoManager stacks and signals."""

    def test_initial_state(self, manager):
        assert not manager.can_undo()
        assert not manager.can_redo()
        assert manager.undo() is False
        assert manager.redo() is False
        assert manager.undo_description() == ""

    def test_commit_clears_redo(self, manager, image):
        manager.commit(AddAnnotationCommand(image, Annotation.box(BoxGeometry(0, 0, 5, 5))))
        manager.undo()
        assert manager.can_redo()

        manager.commit(AddAnnotationCommand(image, Annotation.box(BoxGeometry(1, 1, 5, 5))))

        assert not manager.can_redo()
        assert manager.undo_count == 1

    def test_descriptions_and_history(self, manager, image):
        manager.commit(AddAnnotationCommand(image, Annotation.box(BoxGeometry(0, 0, 5, 5))))
        manager.commit(AddAnnotationCommand(image, Annotation.box(BoxGeometry(1, 1, 5, 5))))
        manager.undo()

        assert manager.undo_description() == "Add Box"
        assert manager.redo_description() == "Add Box"
        assert manager.get_history() == [("Add Box", True), ("Add Box", False)]

    def test_stacks_are_unbounded(self, manager, image):
        for i in range(250):
            manager.commit(AddAnnotationCommand(image, Annotation.box(BoxGeometry(i % 100, 0, 5, 5))))

        assert manager.undo_count == 250

    def test_signals(self, manager, image):
        committed = []
        changed = []
        manager.committed.connect(lambda: committed.append(True))
        manager.state_changed.connect(lambda: changed.append(True))

        manager.commit(AddAnnotationCommand(image, Annotation.box(BoxGeometry(0, 0, 5, 5))))
        manager.undo()
        manager.redo()
        manager.clear()

        assert len(committed) == 3
        assert len(changed) == 4

    def test_failed_revert_leaves_stacks_intact(self, manager):
        command = FailingCommand()
        manager.commit(command)

        with pytest.raises(RuntimeError):
            manager.undo()

        assert manager.undo_count == 1
        assert manager.redo_count == 0
        assert manager.last_command() is command
