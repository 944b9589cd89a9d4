from typing import Optional

from PyQt5.QtCore import QPointF, QRectF, Qt
from PyQt5.QtGui import QBrush, QColor, QFont, QPainter, QPen, QPixmap, QPolygonF
from PyQt5.QtWidgets import QWidget

from planmark.controllers.input_handler import UserInputHandler
from planmark.core.rendering import DrawCommand, Primitive

SELECTION_COLOR = QColor(59, 130, 246)
NOTE_FILL = "#FEF3C7"
BACKGROUND = QColor(64, 64, 64)


def to_qcolor(value: Optional[str], opacity: float = 1.0) -> QColor:
    """Convert #RRGGBB / #RRGGBBAA into a QColor (Qt reads 8 digits as ARGB)."""
    if not value:
        return QColor(Qt.transparent)
    digits = value.lstrip('#')
    r, g, b = int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)
    a = int(digits[6:8], 16) if len(digits) == 8 else 255
    return QColor(r, g, b, int(a * opacity))


def _bounding_rect(command: DrawCommand) -> QRectF:
    xs = [p[0] for p in command.points]
    ys = [p[1] for p in command.points]
    return QRectF(QPointF(min(xs), min(ys)), QPointF(max(xs), max(ys)))


class FloorplanCanvas(QWidget):
    """
    Paints the current floorplan page and its markers, and forwards
    pointer and keyboard input to the annotation session.
    """

    def __init__(self, session, renderer=None, parent=None):
        super().__init__(parent)
        self.session = session
        self.renderer = renderer
        self.input_handler = UserInputHandler(session)

        self.page_pixmap: Optional[QPixmap] = None
        self._middle_pan: Optional[QPointF] = None

        session.annotations_changed.connect(self.update)
        session.layers_changed.connect(self.update)
        session.view.view_changed.connect(self.update)
        session.view.page_changed.connect(lambda _: self.refresh_page())
        session.interaction.view_panned.connect(self.update)

        self.setMouseTracking(True)
        self.setFocusPolicy(Qt.StrongFocus)

    def refresh_page(self) -> None:
        """Re-render the page pixmap for the current page."""
        if self.renderer is None or not self.renderer.page_count:
            self.page_pixmap = None
        else:
            view = self.session.view
            self.page_pixmap = self.renderer.render_pixmap(view.current_page, view.render_zoom)
        self.update()

    # ------------------------------------------------------------------
    # Painting
    # ------------------------------------------------------------------

    def paintEvent(self, event):
        """Custom paint event to render the page and markers."""
        painter = QPainter(self)
        painter.setRenderHint(QPainter.Antialiasing)
        painter.setRenderHint(QPainter.SmoothPixmapTransform)
        painter.fillRect(self.rect(), BACKGROUND)

        if self.page_pixmap:
            viewport = self.session.view.viewport
            left, top = viewport.to_screen_space(0, 0)
            width, height = viewport.screen_page_size
            painter.drawPixmap(QRectF(left, top, width, height), self.page_pixmap,
                               QRectF(self.page_pixmap.rect()))

        for command in self.session.draw_commands():
            painter.save()
            self._paint_command(painter, command)
            painter.restore()

        painter.end()

    def _paint_command(self, painter: QPainter, command: DrawCommand) -> None:
        style = command.style
        painter.setOpacity(style.opacity)

        pen = QPen(to_qcolor(style.stroke_color), style.stroke_width)
        if command.preview:
            pen.setStyle(Qt.DashLine)
        painter.setPen(pen)
        painter.setBrush(QBrush(to_qcolor(style.fill_color)) if style.fill_color else Qt.NoBrush)

        font = QFont(style.font_family)
        font.setPixelSize(max(1, int(style.font_size)))
        painter.setFont(font)

        primitive = command.primitive
        points = [QPointF(x, y) for x, y in command.points]

        painter.save()
        if command.rotation and command.pivot is not None:
            pivot = QPointF(*command.pivot)
            painter.translate(pivot)
            painter.rotate(command.rotation)
            painter.translate(-pivot)

        if primitive == Primitive.PIN:
            center, radius = points[0], command.radius
            painter.setPen(QPen(Qt.white, 2))
            painter.setBrush(QBrush(to_qcolor(style.stroke_color)))
            painter.drawEllipse(center, radius, radius)
            if command.label:
                font.setPixelSize(max(1, int(radius)))
                font.setBold(True)
                painter.setFont(font)
                painter.drawText(QRectF(center.x() - radius, center.y() - radius,
                                        2 * radius, 2 * radius),
                                 Qt.AlignCenter, command.label)
        elif primitive == Primitive.RECT:
            painter.drawRect(QRectF(points[0], points[1]))
        elif primitive == Primitive.ELLIPSE:
            painter.drawEllipse(QRectF(points[0], points[1]))
        elif primitive == Primitive.LINE:
            painter.drawLine(points[0], points[1])
        elif primitive == Primitive.POLYLINE:
            painter.drawPolyline(QPolygonF(points))
        elif primitive == Primitive.POLYGON:
            painter.drawPolygon(QPolygonF(points))
        elif primitive == Primitive.NOTE:
            rect = QRectF(points[0], points[1])
            painter.setBrush(QBrush(to_qcolor(style.fill_color or NOTE_FILL)))
            painter.drawRect(rect)
            if command.label:
                painter.setPen(Qt.black)
                painter.drawText(rect.adjusted(4, 4, -4, -4), Qt.TextWordWrap, command.label)
        elif primitive == Primitive.STAMP:
            metrics = painter.fontMetrics()
            text = command.label or ""
            rect = QRectF(points[0].x(), points[0].y(),
                          metrics.horizontalAdvance(text) + 8, metrics.height() + 4)
            painter.setBrush(Qt.NoBrush)
            painter.drawRect(rect)
            painter.drawText(rect, Qt.AlignCenter, text)
        elif primitive == Primitive.TEXT:
            painter.setPen(to_qcolor(style.stroke_color))
            rect = QRectF(points[0], QPointF(points[0].x() + 10000, points[0].y() + 10000))
            painter.drawText(rect, Qt.AlignLeft | Qt.AlignTop, command.label or "")
        elif primitive == Primitive.FOV:
            center, radius = points[0], command.radius
            cone = QRectF(center.x() - radius, center.y() - radius, 2 * radius, 2 * radius)
            if command.sweep >= 360:
                painter.drawEllipse(cone)
            else:
                # Qt measures angles counter-clockwise in sixteenths of a degree
                start = -(command.rotation + command.sweep / 2)
                painter.drawPie(cone, int(start * 16), int(command.sweep * 16))
        elif primitive == Primitive.HANDLE:
            painter.setPen(QPen(SELECTION_COLOR, 1))
            painter.setBrush(QBrush(Qt.white))
            painter.drawEllipse(points[0], command.radius, command.radius)

        if command.selected:
            self._paint_selection(painter, command)
        painter.restore()

    def _paint_selection(self, painter: QPainter, command: DrawCommand) -> None:
        painter.setOpacity(1.0)
        pen = QPen(SELECTION_COLOR, 2)
        pen.setStyle(Qt.DashLine)
        painter.setPen(pen)
        painter.setBrush(Qt.NoBrush)

        if command.primitive == Primitive.PIN:
            radius = command.radius + 4
            painter.drawEllipse(QPointF(*command.points[0]), radius, radius)
        elif len(command.points) > 1:
            painter.drawRect(_bounding_rect(command).adjusted(-4, -4, 4, 4))
        else:
            x, y = command.points[0]
            painter.drawRect(QRectF(x - 4, y - 4, 8, 8))

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def mousePressEvent(self, event):
        if event.button() == Qt.LeftButton:
            self.setFocus()
            self.session.interaction.press(event.pos().x(), event.pos().y())
        elif event.button() == Qt.MiddleButton:
            self._middle_pan = QPointF(event.pos())

    def mouseMoveEvent(self, event):
        if self._middle_pan is not None:
            delta = QPointF(event.pos()) - self._middle_pan
            self._middle_pan = QPointF(event.pos())
            self.session.view.pan_by(delta.x(), delta.y())
            return
        self.session.interaction.move(event.pos().x(), event.pos().y())

    def mouseReleaseEvent(self, event):
        if event.button() == Qt.LeftButton:
            self.session.interaction.release(event.pos().x(), event.pos().y())
        elif event.button() == Qt.MiddleButton:
            self._middle_pan = None

    def mouseDoubleClickEvent(self, event):
        if event.button() == Qt.LeftButton:
            self.session.interaction.double_click(event.pos().x(), event.pos().y())

    def wheelEvent(self, event):
        pos = event.pos()
        self.session.view.wheel_zoom(event.angleDelta().y(), pos.x(), pos.y())
        event.accept()

    def keyPressEvent(self, event):
        self.input_handler.handle_key_press(event)
        if not event.isAccepted():
            super().keyPressEvent(event)
