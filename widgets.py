"""
AutomataFlow - Custom Widgets
Qt glue between the undo history and the widgets that mirror it.
"""

from typing import Optional

from PyQt6.QtWidgets import (
    QDockWidget, QListWidget, QListWidgetItem, QWidget, QVBoxLayout, QLabel
)
from PyQt6.QtCore import Qt, pyqtSignal, QObject
from PyQt6.QtGui import QAction, QColor, QFont, QBrush

from undo import UndoManager


class HistorySignals(QObject):
    """
    Re-emits UndoManager notifications as Qt signals.
    The *_changed signals fire only when the value actually flips.
    """
    history_changed = pyqtSignal()
    can_undo_changed = pyqtSignal(bool)
    can_redo_changed = pyqtSignal(bool)
    clean_changed = pyqtSignal(bool)

    def __init__(self, history: UndoManager, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.history = history
        self._can_undo = history.can_undo()
        self._can_redo = history.can_redo()
        self._clean = history.is_clean()
        history.subscribe(self._on_history_changed)

    def detach(self) -> None:
        """Stop listening to the history."""
        self.history.unsubscribe(self._on_history_changed)

    def _on_history_changed(self) -> None:
        self.history_changed.emit()

        can_undo = self.history.can_undo()
        if can_undo != self._can_undo:
            self._can_undo = can_undo
            self.can_undo_changed.emit(can_undo)

        can_redo = self.history.can_redo()
        if can_redo != self._can_redo:
            self._can_redo = can_redo
            self.can_redo_changed.emit(can_redo)

        clean = self.history.is_clean()
        if clean != self._clean:
            self._clean = clean
            self.clean_changed.emit(clean)

    def refresh(self) -> None:
        """Re-emit everything, e.g. after reset() which notifies nobody."""
        self._can_undo = not self.history.can_undo()
        self._can_redo = not self.history.can_redo()
        self._clean = not self.history.is_clean()
        self._on_history_changed()


def bind_undo_redo_actions(signals: HistorySignals, undo_action: QAction,
                           redo_action: QAction) -> None:
    """
    Keep undo/redo actions enabled and captioned after the history.
    Triggering them is left to the owner, which decides how failures surface.
    """
    history = signals.history

    def update() -> None:
        undo_name = history.undo_text()
        redo_name = history.redo_text()
        undo_action.setEnabled(undo_name is not None)
        redo_action.setEnabled(redo_name is not None)
        undo_action.setText(f"&Undo {undo_name}" if undo_name else "&Undo")
        redo_action.setText(f"&Redo {redo_name}" if redo_name else "&Redo")

    signals.history_changed.connect(update)
    update()


class HistoryDockWidget(QDockWidget):
    """
    Lists every recorded action. The current one is bold, the redo tail is
    greyed out. Clicking a row asks to move the history to that point.
    """

    INITIAL_ENTRY = "<Initial state>"
    REDO_TAIL_COLOR = "#9E9E9E"

    jump_requested = pyqtSignal(int)  # target stack location

    def __init__(self, signals: HistorySignals, parent: Optional[QWidget] = None):
        super().__init__("History", parent)
        self.setObjectName("HistoryDock")
        self.history = signals.history

        container = QWidget()
        layout = QVBoxLayout(container)
        layout.setContentsMargins(4, 4, 4, 4)

        self.summary_label = QLabel()
        layout.addWidget(self.summary_label)

        self.list_widget = QListWidget()
        self.list_widget.itemClicked.connect(self._on_item_clicked)
        layout.addWidget(self.list_widget)

        self.setWidget(container)
        signals.history_changed.connect(self.rebuild)
        self.rebuild()

    def rebuild(self) -> None:
        self.list_widget.clear()
        location = self.history.get_stack_location()

        entries = [(self.INITIAL_ENTRY, "Diagram as opened")]
        entries += [(a.name, a.description) for a in self.history.get_stack()]

        for row, (name, description) in enumerate(entries):
            item = QListWidgetItem(name)
            item.setToolTip(description)
            item.setData(Qt.ItemDataRole.UserRole, row - 1)
            if row - 1 == location:
                font = QFont()
                font.setBold(True)
                item.setFont(font)
            elif row - 1 > location:
                item.setForeground(QBrush(QColor(self.REDO_TAIL_COLOR)))
            self.list_widget.addItem(item)

        self.list_widget.setCurrentRow(location + 1)
        total = len(self.history)
        self.summary_label.setText(f"{location + 1} of {total} applied")

    def _on_item_clicked(self, item: QListWidgetItem) -> None:
        target = item.data(Qt.ItemDataRole.UserRole)
        if target != self.history.get_stack_location():
            self.jump_requested.emit(target)
