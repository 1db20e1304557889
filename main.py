"""
AutomataFlow - Main Application
Desktop editor for state diagrams with full undo/redo history.
"""

import sys
import logging
from pathlib import Path
from functools import partial
from typing import Callable, Optional

from PyQt6.QtWidgets import (
    QApplication, QMainWindow, QGraphicsScene, QGraphicsView, QGraphicsSceneMouseEvent,
    QGraphicsSceneContextMenuEvent, QToolBar, QStatusBar, QFileDialog, QMessageBox,
    QMenu, QInputDialog
)
from PyQt6.QtCore import Qt, QPoint, QPointF, QRectF, QTimer, pyqtSignal
from PyQt6.QtGui import QAction, QKeySequence, QWheelEvent, QColor, QPainter, QPen, QTransform

from models import DiagramData
from undo import UndoManager, Action, HistoryError
from utils import (
    DiagramFileManager, EditorSettings, ColorScheme, DIAGRAM_SUFFIX,
    load_settings, setup_logging
)
from graphics_items import StateItem, TransitionItem, curve_offsets
from widgets import HistorySignals, HistoryDockWidget, bind_undo_redo_actions
import commands


logger = logging.getLogger(__name__)

APP_NAME = "AutomataFlow"
FILE_FILTER = f"AutomataFlow Diagrams (*{DIAGRAM_SUFFIX});;All Files (*)"

# Errors an edit can fail with that are reported to the user instead of crashing
EDIT_ERRORS = (KeyError, ValueError, HistoryError)


def _add_menu_action(menu: QMenu, text: str, callback: Callable[[], object]) -> QAction:
    """Add a menu entry whose callback ignores the triggered(checked) argument."""
    action = menu.addAction(text)
    action.triggered.connect(lambda _checked=False: callback())
    return action


# ============================================================================
# Custom Graphics Scene
# ============================================================================
class DiagramScene(QGraphicsScene):
    """
    Scene mirroring a DiagramData. Items are rebuilt from the model after
    every history change; gestures are reported as signals.
    """

    move_finished = pyqtSignal(str, float, float, float, float)  # state_id, old_x, old_y, new_x, new_y
    rename_requested = pyqtSignal(str)  # state_id
    add_state_requested = pyqtSignal(float, float)  # x, y
    state_menu_requested = pyqtSignal(str, QPoint)  # state_id, screen pos
    transition_menu_requested = pyqtSignal(str, QPoint)  # transition_id, screen pos
    canvas_menu_requested = pyqtSignal(QPointF, QPoint)  # scene pos, screen pos

    def __init__(self, diagram: DiagramData, colors: ColorScheme, grid_size: int = 25, parent=None):
        super().__init__(parent)
        self.setSceneRect(-2000, -2000, 4000, 4000)
        self.diagram = diagram
        self.colors = colors
        self._grid_size = grid_size
        self._states: dict[str, StateItem] = {}
        self._transitions: dict[str, TransitionItem] = {}
        self._sync_pending = False
        self.sync()

    @property
    def state_items(self) -> dict[str, StateItem]:
        return self._states

    @property
    def transition_items(self) -> dict[str, TransitionItem]:
        return self._transitions

    def drawBackground(self, painter: QPainter, rect: QRectF) -> None:
        """Draw a subtle grid background."""
        painter.fillRect(rect, QColor(self.colors.background))
        painter.setPen(QPen(QColor(self.colors.grid), 1))

        left = int(rect.left()) - (int(rect.left()) % self._grid_size)
        top = int(rect.top()) - (int(rect.top()) % self._grid_size)

        x = left
        while x < rect.right():
            painter.drawLine(int(x), int(rect.top()), int(x), int(rect.bottom()))
            x += self._grid_size

        y = top
        while y < rect.bottom():
            painter.drawLine(int(rect.left()), int(y), int(rect.right()), int(y))
            y += self._grid_size

    def schedule_sync(self) -> None:
        """Rebuild on the next event loop turn, outside any item's event handler."""
        if not self._sync_pending:
            self._sync_pending = True
            QTimer.singleShot(0, self.sync)

    def sync(self) -> None:
        """Rebuild every item from the diagram, keeping the selection."""
        self._sync_pending = False
        selected = {getattr(item, "state_id", None) or getattr(item, "transition_id", None)
                    for item in self.selectedItems()}

        self.clear()
        self._states.clear()
        self._transitions.clear()

        for state in self.diagram.states:
            item = StateItem(state, self.colors, is_start=state.id == self.diagram.start_state_id)
            item.signals.state_dragged.connect(self._update_transitions_of)
            item.signals.drag_finished.connect(self.move_finished, Qt.ConnectionType.QueuedConnection)
            item.signals.rename_requested.connect(self.rename_requested)
            self.addItem(item)
            self._states[state.id] = item
            item.setSelected(state.id in selected)

        for transition, offset in self._transitions_with_offsets():
            source = self._states.get(transition.source_id)
            target = self._states.get(transition.target_id)
            if source is None or target is None:
                logger.warning("Transition %s has a missing endpoint; not drawn", transition.id)
                continue
            item = TransitionItem(transition, source, target, self.colors, offset)
            self.addItem(item)
            self._transitions[transition.id] = item
            item.setSelected(transition.id in selected)

    def _transitions_with_offsets(self):
        groups: dict[frozenset, list] = {}
        for transition in self.diagram.transitions:
            groups.setdefault(frozenset((transition.source_id, transition.target_id)), []).append(transition)

        for group in groups.values():
            # Offsets are measured against one fixed direction per pair of states
            first = min(group[0].source_id, group[0].target_id)
            for transition, offset in zip(group, curve_offsets(len(group))):
                yield transition, offset if transition.source_id == first else -offset

    def _update_transitions_of(self, state_id: str) -> None:
        for item in self._transitions.values():
            if state_id in (item.transition_data.source_id, item.transition_data.target_id):
                item.update_path()

    def mouseDoubleClickEvent(self, event: QGraphicsSceneMouseEvent) -> None:
        if self.itemAt(event.scenePos(), QTransform()) is None:
            pos = event.scenePos()
            self.add_state_requested.emit(pos.x(), pos.y())
            event.accept()
            return
        super().mouseDoubleClickEvent(event)

    def contextMenuEvent(self, event: QGraphicsSceneContextMenuEvent) -> None:
        for item in self.items(event.scenePos()):
            while item.parentItem() is not None:
                item = item.parentItem()
            if isinstance(item, StateItem):
                self.state_menu_requested.emit(item.state_id, event.screenPos())
                return
            if isinstance(item, TransitionItem):
                self.transition_menu_requested.emit(item.transition_id, event.screenPos())
                return
        self.canvas_menu_requested.emit(event.scenePos(), event.screenPos())


# ============================================================================
# Custom Graphics View
# ============================================================================
class DiagramView(QGraphicsView):
    """View with wheel zoom and keyboard deletion."""

    ZOOM_STEP = 1.15

    delete_requested = pyqtSignal()

    def __init__(self, scene: DiagramScene, parent=None):
        super().__init__(scene, parent)
        self.setRenderHint(QPainter.RenderHint.Antialiasing)
        self.setViewportUpdateMode(QGraphicsView.ViewportUpdateMode.FullViewportUpdate)
        self.setDragMode(QGraphicsView.DragMode.RubberBandDrag)
        self.setTransformationAnchor(QGraphicsView.ViewportAnchor.AnchorUnderMouse)

    def keyPressEvent(self, event) -> None:
        if event.key() in (Qt.Key.Key_Delete, Qt.Key.Key_Backspace):
            self.delete_requested.emit()
            event.accept()
        else:
            super().keyPressEvent(event)

    def wheelEvent(self, event: QWheelEvent) -> None:
        if event.modifiers() & Qt.KeyboardModifier.ControlModifier:
            factor = self.ZOOM_STEP if event.angleDelta().y() > 0 else 1 / self.ZOOM_STEP
            self.scale(factor, factor)
            event.accept()
        else:
            super().wheelEvent(event)


# ============================================================================
# Main Window
# ============================================================================
class MainWindow(QMainWindow):
    """
    Main application window.
    Owns the session's diagram and its undo history; every edit is built by
    a command factory and pushed to the history.
    """

    def __init__(self, settings: Optional[EditorSettings] = None):
        super().__init__()
        self.settings = settings or EditorSettings()
        self.setMinimumSize(800, 600)
        self.resize(self.settings.window_width, self.settings.window_height)

        self.diagram = DiagramData()
        self.history = UndoManager()
        self.history_signals = HistorySignals(self.history, self)
        self.file_manager = DiagramFileManager(self.diagram, self.history)

        self._setup_ui()
        self._setup_menu()
        self._setup_toolbar()
        self._setup_statusbar()

        self.history_signals.history_changed.connect(self.scene.schedule_sync)
        self.history_signals.clean_changed.connect(self._update_title)
        self._update_title()

    def _setup_ui(self) -> None:
        """Setup the canvas and the history dock."""
        self.scene = DiagramScene(self.diagram, self.settings.color_scheme,
                                  self.settings.grid_size, self)
        self.view = DiagramView(self.scene, self)
        self.setCentralWidget(self.view)

        self.scene.move_finished.connect(self._on_move_finished)
        self.scene.rename_requested.connect(self._rename_state)
        self.scene.add_state_requested.connect(self._add_state_at)
        self.scene.state_menu_requested.connect(self._show_state_menu)
        self.scene.transition_menu_requested.connect(self._show_transition_menu)
        self.scene.canvas_menu_requested.connect(self._show_canvas_menu)
        self.view.delete_requested.connect(self._delete_selected_items)

        self.history_dock = HistoryDockWidget(self.history_signals, self)
        self.history_dock.jump_requested.connect(self._jump_to, Qt.ConnectionType.QueuedConnection)
        self.addDockWidget(Qt.DockWidgetArea.RightDockWidgetArea, self.history_dock)

    def _setup_menu(self) -> None:
        """Setup the menu bar."""
        menubar = self.menuBar()

        # File menu
        file_menu = menubar.addMenu("&File")

        new_action = QAction("&New Diagram", self)
        new_action.setShortcut(QKeySequence.StandardKey.New)
        new_action.triggered.connect(self._new_diagram)
        file_menu.addAction(new_action)

        open_action = QAction("&Open...", self)
        open_action.setShortcut(QKeySequence.StandardKey.Open)
        open_action.triggered.connect(self._open_diagram)
        file_menu.addAction(open_action)

        file_menu.addSeparator()

        save_action = QAction("&Save", self)
        save_action.setShortcut(QKeySequence.StandardKey.Save)
        save_action.triggered.connect(self._save_diagram)
        file_menu.addAction(save_action)

        save_as_action = QAction("Save &As...", self)
        save_as_action.setShortcut(QKeySequence.StandardKey.SaveAs)
        save_as_action.triggered.connect(self._save_diagram_as)
        file_menu.addAction(save_as_action)

        file_menu.addSeparator()

        exit_action = QAction("E&xit", self)
        exit_action.triggered.connect(self.close)
        file_menu.addAction(exit_action)

        # Edit menu
        edit_menu = menubar.addMenu("&Edit")

        self.undo_action = QAction("&Undo", self)
        self.undo_action.setShortcut(QKeySequence.StandardKey.Undo)
        self.undo_action.triggered.connect(self._undo)
        edit_menu.addAction(self.undo_action)

        self.redo_action = QAction("&Redo", self)
        self.redo_action.setShortcut(QKeySequence.StandardKey.Redo)
        self.redo_action.triggered.connect(self._redo)
        edit_menu.addAction(self.redo_action)

        bind_undo_redo_actions(self.history_signals, self.undo_action, self.redo_action)

        edit_menu.addSeparator()

        delete_action = QAction("&Delete Selection", self)
        delete_action.triggered.connect(self._delete_selected_items)
        edit_menu.addAction(delete_action)

        # View menu
        view_menu = menubar.addMenu("&View")

        zoom_in_action = QAction("Zoom &In", self)
        zoom_in_action.setShortcut(QKeySequence.StandardKey.ZoomIn)
        zoom_in_action.triggered.connect(lambda: self.view.scale(1.2, 1.2))
        view_menu.addAction(zoom_in_action)

        zoom_out_action = QAction("Zoom &Out", self)
        zoom_out_action.setShortcut(QKeySequence.StandardKey.ZoomOut)
        zoom_out_action.triggered.connect(lambda: self.view.scale(1 / 1.2, 1 / 1.2))
        view_menu.addAction(zoom_out_action)

        view_menu.addAction(self.history_dock.toggleViewAction())

    def _setup_toolbar(self) -> None:
        toolbar = QToolBar("Edit")
        toolbar.setObjectName("EditToolbar")
        toolbar.setMovable(False)
        self.addToolBar(Qt.ToolBarArea.TopToolBarArea, toolbar)

        toolbar.addAction(self.undo_action)
        toolbar.addAction(self.redo_action)
        toolbar.addSeparator()

        add_state_action = QAction("Add State", self)
        add_state_action.triggered.connect(self._add_state_at_center)
        toolbar.addAction(add_state_action)

    def _setup_statusbar(self) -> None:
        self.statusbar = QStatusBar()
        self.setStatusBar(self.statusbar)
        self.statusbar.showMessage(f"Welcome to {APP_NAME}")

    def _update_title(self) -> None:
        self.setWindowTitle(f"{APP_NAME} - {self.file_manager.display_name}[*]")
        self.setWindowModified(not self.history.is_clean())

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def apply(self, build: Callable[..., Action], *args) -> bool:
        """Build an action from the current diagram and push it."""
        try:
            action = build(self.diagram, *args)
            self.history.push_action(action)
        except EDIT_ERRORS as e:
            self._report_edit_failure(e)
            return False
        self.statusbar.showMessage(action.description, 3000)
        return True

    def _undo(self) -> None:
        try:
            self.history.undo()
        except EDIT_ERRORS as e:
            self._report_edit_failure(e)

    def _redo(self) -> None:
        try:
            self.history.redo()
        except EDIT_ERRORS as e:
            self._report_edit_failure(e)

    def _jump_to(self, index: int) -> None:
        try:
            self.history.jump_to(index)
        except (IndexError,) + EDIT_ERRORS as e:
            self._report_edit_failure(e)

    def _report_edit_failure(self, error: Exception) -> None:
        logger.warning("Edit failed: %s", error)
        self.statusbar.showMessage(f"Edit failed: {error}", 5000)

    # ------------------------------------------------------------------
    # Canvas gestures
    # ------------------------------------------------------------------

    def _next_state_label(self) -> str:
        taken = {s.label for s in self.diagram.states}
        n = 0
        while f"q{n}" in taken:
            n += 1
        return f"q{n}"

    def _add_state_at(self, x: float, y: float) -> None:
        self.apply(commands.add_state, self._next_state_label(), x, y)

    def _add_state_at_center(self) -> None:
        center = self.view.mapToScene(self.view.viewport().rect().center())
        self._add_state_at(center.x(), center.y())

    def _on_move_finished(self, state_id: str, old_x: float, old_y: float,
                          new_x: float, new_y: float) -> None:
        self.apply(commands.move_state, state_id, new_x, new_y, old_x, old_y)

    def _rename_state(self, state_id: str) -> None:
        state = self.diagram.get_state_by_id(state_id)
        if state is None:
            return
        label, ok = QInputDialog.getText(self, "Rename State", "Label:", text=state.label)
        if ok and label != state.label:
            self.apply(commands.rename_state, state_id, label)

    def _add_token(self, transition_id: str) -> None:
        token, ok = QInputDialog.getText(self, "Add Token", "Token:")
        if ok:
            self.apply(commands.add_token, transition_id, token)

    def _delete_selected_items(self) -> None:
        """Delete selected transitions first, then selected states."""
        selected = self.scene.selectedItems()
        transition_ids = [i.transition_id for i in selected if isinstance(i, TransitionItem)]
        state_ids = [i.state_id for i in selected if isinstance(i, StateItem)]

        for transition_id in transition_ids:
            if self.diagram.get_transition_by_id(transition_id) is not None:
                self.apply(commands.remove_transition, transition_id)
        for state_id in state_ids:
            self.apply(commands.remove_state, state_id)

    def _show_state_menu(self, state_id: str, screen_pos: QPoint) -> None:
        state = self.diagram.get_state_by_id(state_id)
        if state is None:
            return
        menu = QMenu(self)
        _add_menu_action(menu, "Rename...", partial(self._rename_state, state_id))

        accept_action = menu.addAction("Accept State")
        accept_action.setCheckable(True)
        accept_action.setChecked(state.is_accept)
        accept_action.triggered.connect(
            lambda checked: self.apply(commands.set_accept, state_id, checked))

        if self.diagram.start_state_id == state_id:
            _add_menu_action(menu, "Clear Start State", partial(self.apply, commands.set_start_state, None))
        else:
            _add_menu_action(menu, "Set as Start State", partial(self.apply, commands.set_start_state, state_id))

        connect_menu = menu.addMenu("Connect To")
        for target in self.diagram.states:
            _add_menu_action(connect_menu, target.label,
                             partial(self.apply, commands.add_transition, state_id, target.id))

        menu.addSeparator()
        _add_menu_action(menu, "Delete", partial(self.apply, commands.remove_state, state_id))
        menu.exec(screen_pos)

    def _show_transition_menu(self, transition_id: str, screen_pos: QPoint) -> None:
        transition = self.diagram.get_transition_by_id(transition_id)
        if transition is None:
            return
        menu = QMenu(self)
        _add_menu_action(menu, "Add Token...", partial(self._add_token, transition_id))

        remove_menu = menu.addMenu("Remove Token")
        remove_menu.setEnabled(bool(transition.tokens))
        for token in transition.tokens:
            _add_menu_action(remove_menu, token,
                             partial(self.apply, commands.remove_token, transition_id, token))

        menu.addSeparator()
        _add_menu_action(menu, "Delete", partial(self.apply, commands.remove_transition, transition_id))
        menu.exec(screen_pos)

    def _show_canvas_menu(self, scene_pos: QPointF, screen_pos: QPoint) -> None:
        menu = QMenu(self)
        _add_menu_action(menu, "Add State Here", partial(self._add_state_at, scene_pos.x(), scene_pos.y()))
        menu.exec(screen_pos)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def _confirm_discard(self) -> bool:
        """Ask to save unsaved changes. Returns False if the user cancelled."""
        if self.history.is_clean():
            return True
        answer = QMessageBox.question(
            self, "Unsaved Changes",
            f"Save changes to {self.file_manager.display_name}?",
            QMessageBox.StandardButton.Save | QMessageBox.StandardButton.Discard
            | QMessageBox.StandardButton.Cancel
        )
        if answer == QMessageBox.StandardButton.Save:
            return self._save_diagram()
        return answer == QMessageBox.StandardButton.Discard

    def _after_history_reset(self) -> None:
        # reset() notifies nobody, so push the new state out by hand
        self.history_signals.refresh()
        self.scene.sync()
        self._update_title()

    def _new_diagram(self) -> None:
        if not self._confirm_discard():
            return
        self.file_manager.new_diagram()
        self._after_history_reset()

    def open_path(self, path: Path) -> bool:
        if not self.file_manager.open_diagram(path):
            QMessageBox.warning(self, "Open Failed", f"Could not open {path}.")
            return False
        self._after_history_reset()
        self.statusbar.showMessage(f"Opened {path}", 3000)
        return True

    def _open_diagram(self) -> None:
        if not self._confirm_discard():
            return
        path, _ = QFileDialog.getOpenFileName(self, "Open Diagram", "", FILE_FILTER)
        if path:
            self.open_path(Path(path))

    def _save_diagram(self) -> bool:
        if not self.file_manager.is_file_open:
            return self._save_diagram_as()
        if not self.file_manager.save_diagram():
            QMessageBox.warning(self, "Save Failed", "Could not save diagram.")
            return False
        self._update_title()
        self.statusbar.showMessage("Diagram saved", 3000)
        return True

    def _save_diagram_as(self) -> bool:
        path, _ = QFileDialog.getSaveFileName(self, "Save Diagram", "", FILE_FILTER)
        if not path:
            return False
        if not path.endswith(DIAGRAM_SUFFIX):
            path += DIAGRAM_SUFFIX
        if not self.file_manager.save_diagram(Path(path)):
            QMessageBox.warning(self, "Save Failed", f"Could not save {path}.")
            return False
        self._update_title()
        self.statusbar.showMessage("Diagram saved", 3000)
        return True

    def closeEvent(self, event) -> None:
        """Handle window close."""
        if self._confirm_discard():
            self.history_signals.detach()
            event.accept()
        else:
            event.ignore()


# ============================================================================
# Application Entry Point
# ============================================================================
def main():
    settings = load_settings()
    setup_logging(settings.log_level)

    app = QApplication(sys.argv)
    app.setApplicationName(APP_NAME)

    window = MainWindow(settings)
    if len(sys.argv) > 1:
        window.open_path(Path(sys.argv[1]))
    window.show()

    sys.exit(app.exec())


if __name__ == "__main__":
    main()
