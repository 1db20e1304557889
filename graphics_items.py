"""
AutomataFlow - Custom Graphics Items
QGraphicsItem subclasses drawing states and transitions on the canvas.
Items only render DiagramData and report gestures; edits go through commands.
"""

from typing import Optional
import math

from PyQt6.QtWidgets import (
    QGraphicsItem, QGraphicsEllipseItem, QGraphicsPathItem,
    QGraphicsSimpleTextItem, QGraphicsSceneMouseEvent,
    QStyleOptionGraphicsItem, QWidget
)
from PyQt6.QtCore import Qt, QRectF, QPointF, pyqtSignal, QObject
from PyQt6.QtGui import QPainter, QPen, QBrush, QColor, QFont, QPolygonF, QPainterPath

from models import StateData, TransitionData
from utils import ColorScheme


# ============================================================================
# Signal Emitter for Graphics Items
# ============================================================================
class ItemSignals(QObject):
    """Signals emitted by canvas items."""
    drag_started = pyqtSignal(str)  # state_id
    state_dragged = pyqtSignal(str)  # state_id, emitted while moving
    drag_finished = pyqtSignal(str, float, float, float, float)  # state_id, old_x, old_y, new_x, new_y
    rename_requested = pyqtSignal(str)  # state_id


# ============================================================================
# State Item
# ============================================================================
class StateItem(QGraphicsEllipseItem):
    """
    A state drawn as a circle centered on its position.
    Accept states get an inner ring, the start state an entry arrow.
    """

    RADIUS = 30
    ACCEPT_RING_GAP = 5
    START_ARROW_LENGTH = 28

    def __init__(self, state_data: StateData, colors: ColorScheme, is_start: bool = False):
        r = self.RADIUS
        super().__init__(-r, -r, 2 * r, 2 * r)
        self.state_data = state_data
        self.colors = colors
        self.is_start = is_start
        self.signals = ItemSignals()
        self._press_pos: Optional[QPointF] = None

        self.setFlag(QGraphicsItem.GraphicsItemFlag.ItemIsSelectable, True)
        self.setFlag(QGraphicsItem.GraphicsItemFlag.ItemIsMovable, True)
        self.setFlag(QGraphicsItem.GraphicsItemFlag.ItemSendsGeometryChanges, True)
        self.setZValue(1)

        self._label = QGraphicsSimpleTextItem(self)
        self._label.setFont(QFont("Segoe UI", 10))
        self.refresh()

    @property
    def state_id(self) -> str:
        return self.state_data.id

    def refresh(self) -> None:
        """Re-read position and label from the model."""
        self.setPos(self.state_data.position.x, self.state_data.position.y)
        self._label.setText(self.state_data.label)
        self._label.setBrush(QBrush(QColor(self.colors.state_label)))
        rect = self._label.boundingRect()
        self._label.setPos(-rect.width() / 2, -rect.height() / 2)
        self.update()

    def boundingRect(self) -> QRectF:
        margin = self.START_ARROW_LENGTH + 4 if self.is_start else 4
        return super().boundingRect().adjusted(-margin, -4, 4, 4)

    def paint(self, painter: QPainter, option: QStyleOptionGraphicsItem,
              widget: Optional[QWidget] = None) -> None:
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        if self.isSelected():
            stroke = QColor(self.colors.selected_stroke)
        elif self.state_data.is_accept:
            stroke = QColor(self.colors.accept_stroke)
        else:
            stroke = QColor(self.colors.state_stroke)

        painter.setPen(QPen(stroke, 2))
        painter.setBrush(QBrush(QColor(self.colors.state_fill)))
        painter.drawEllipse(self.rect())

        if self.state_data.is_accept:
            gap = self.ACCEPT_RING_GAP
            painter.setBrush(Qt.BrushStyle.NoBrush)
            painter.drawEllipse(self.rect().adjusted(gap, gap, -gap, -gap))

        if self.is_start:
            marker = QColor(self.colors.start_marker)
            painter.setPen(QPen(marker, 2))
            tip = QPointF(-self.RADIUS, 0)
            painter.drawLine(QPointF(-self.RADIUS - self.START_ARROW_LENGTH, 0), tip)
            painter.setBrush(QBrush(marker))
            painter.drawPolygon(arrow_head(tip, 0.0, 8))

    def itemChange(self, change, value):
        if change == QGraphicsItem.GraphicsItemChange.ItemPositionHasChanged:
            self.signals.state_dragged.emit(self.state_id)
        return super().itemChange(change, value)

    def mousePressEvent(self, event: QGraphicsSceneMouseEvent) -> None:
        if event.button() == Qt.MouseButton.LeftButton:
            self._press_pos = QPointF(self.pos())
            self.signals.drag_started.emit(self.state_id)
        super().mousePressEvent(event)

    def mouseReleaseEvent(self, event: QGraphicsSceneMouseEvent) -> None:
        super().mouseReleaseEvent(event)
        if self._press_pos is not None and self._press_pos != self.pos():
            old = self._press_pos
            self.signals.drag_finished.emit(self.state_id, old.x(), old.y(),
                                            self.pos().x(), self.pos().y())
        self._press_pos = None

    def mouseDoubleClickEvent(self, event: QGraphicsSceneMouseEvent) -> None:
        self.signals.rename_requested.emit(self.state_id)
        event.accept()


# ============================================================================
# Transition Item
# ============================================================================
def arrow_head(tip: QPointF, angle: float, size: float) -> QPolygonF:
    """Triangle with its point at tip, facing along angle (radians)."""
    spread = math.pi / 7
    left = QPointF(tip.x() - size * math.cos(angle - spread),
                   tip.y() - size * math.sin(angle - spread))
    right = QPointF(tip.x() - size * math.cos(angle + spread),
                    tip.y() - size * math.sin(angle + spread))
    return QPolygonF([tip, left, right])


class TransitionItem(QGraphicsPathItem):
    """
    An arrow from one state to another, labelled with its tokens.
    Straight when it is the only transition between its states, curved
    (by curve_offset) when several share them, and a loop above the state
    when source and target coincide.
    """

    ARROW_SIZE = 10
    LOOP_HEIGHT = 2.4
    LABEL_GAP = 14

    def __init__(self, transition_data: TransitionData, source_item: StateItem,
                 target_item: StateItem, colors: ColorScheme, curve_offset: float = 0.0):
        super().__init__()
        self.transition_data = transition_data
        self.source_item = source_item
        self.target_item = target_item
        self.colors = colors
        self.curve_offset = curve_offset
        self._tip = QPointF()
        self._tip_angle = 0.0

        self.setFlag(QGraphicsItem.GraphicsItemFlag.ItemIsSelectable, True)
        self.setZValue(-1)  # Draw behind states

        self._label = QGraphicsSimpleTextItem(self)
        self._label.setFont(QFont("Segoe UI", 10))
        self.update_path()

    @property
    def transition_id(self) -> str:
        return self.transition_data.id

    @property
    def is_curved(self) -> bool:
        return self.curve_offset != 0.0 and not self.transition_data.is_self_loop

    def _arrow_color(self) -> QColor:
        if self.isSelected():
            return QColor(self.colors.transition_selected_arrow)
        return QColor(self.colors.transition_arrow)

    def update_path(self) -> None:
        """Recalculate the path from the current state positions."""
        self.prepareGeometryChange()
        if self.transition_data.is_self_loop:
            path, label_pos = self._self_loop_path()
        else:
            path, label_pos = self._between_path()
        self.setPath(path)

        self._label.setText(self.transition_data.label_text())
        self._label.setBrush(QBrush(QColor(self.colors.transition_label)))
        rect = self._label.boundingRect()
        self._label.setPos(label_pos.x() - rect.width() / 2, label_pos.y() - rect.height() / 2)

    def _self_loop_path(self) -> tuple[QPainterPath, QPointF]:
        center = self.source_item.pos()
        r = StateItem.RADIUS
        start = QPointF(center.x() + r * math.cos(math.radians(-120)),
                        center.y() + r * math.sin(math.radians(-120)))
        end = QPointF(center.x() + r * math.cos(math.radians(-60)),
                      center.y() + r * math.sin(math.radians(-60)))
        height = r * self.LOOP_HEIGHT
        c1 = QPointF(center.x() - r, center.y() - height)
        c2 = QPointF(center.x() + r, center.y() - height)

        path = QPainterPath(start)
        path.cubicTo(c1, c2, end)
        self._tip = end
        self._tip_angle = math.atan2(end.y() - c2.y(), end.x() - c2.x())
        return path, QPointF(center.x(), center.y() - height * 0.75 - self.LABEL_GAP)

    def _between_path(self) -> tuple[QPainterPath, QPointF]:
        s = self.source_item.pos()
        t = self.target_item.pos()
        dx, dy = t.x() - s.x(), t.y() - s.y()
        length = math.hypot(dx, dy) or 1.0
        ux, uy = dx / length, dy / length
        nx, ny = -uy, ux  # Left-hand normal
        mid = QPointF((s.x() + t.x()) / 2, (s.y() + t.y()) / 2)
        r = StateItem.RADIUS

        if self.is_curved:
            control = QPointF(mid.x() + nx * self.curve_offset * 2,
                              mid.y() + ny * self.curve_offset * 2)
            start = self._toward(s, control, r)
            end = self._toward(t, control, r)
            path = QPainterPath(start)
            path.quadTo(control, end)
            self._tip = end
            self._tip_angle = math.atan2(end.y() - control.y(), end.x() - control.x())
            offset = self.curve_offset + math.copysign(self.LABEL_GAP, self.curve_offset)
        else:
            start = QPointF(s.x() + ux * r, s.y() + uy * r)
            end = QPointF(t.x() - ux * r, t.y() - uy * r)
            path = QPainterPath(start)
            path.lineTo(end)
            self._tip = end
            self._tip_angle = math.atan2(uy, ux)
            offset = self.LABEL_GAP

        return path, QPointF(mid.x() + nx * offset, mid.y() + ny * offset)

    @staticmethod
    def _toward(center: QPointF, point: QPointF, radius: float) -> QPointF:
        dx, dy = point.x() - center.x(), point.y() - center.y()
        length = math.hypot(dx, dy) or 1.0
        return QPointF(center.x() + dx / length * radius, center.y() + dy / length * radius)

    def boundingRect(self) -> QRectF:
        extra = self.ARROW_SIZE + 2
        return super().boundingRect().adjusted(-extra, -extra, extra, extra)

    def paint(self, painter: QPainter, option: QStyleOptionGraphicsItem,
              widget: Optional[QWidget] = None) -> None:
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        color = self._arrow_color()
        painter.setPen(QPen(color, 2.5, Qt.PenStyle.SolidLine, Qt.PenCapStyle.RoundCap,
                            Qt.PenJoinStyle.RoundJoin))
        painter.setBrush(Qt.BrushStyle.NoBrush)
        painter.drawPath(self.path())

        painter.setBrush(QBrush(color))
        painter.drawPolygon(arrow_head(self._tip, self._tip_angle, self.ARROW_SIZE))


def curve_offsets(count: int, spacing: float = 18.0) -> list[float]:
    """
    Offsets for count transitions sharing the same pair of states.
    A lone transition stays straight; several fan out symmetrically.
    """
    if count <= 1:
        return [0.0] * count
    return [spacing * (i - (count - 1) / 2) or spacing / 2 for i in range(count)]
