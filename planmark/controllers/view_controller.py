"""
Controller for managing the viewport and page navigation.
"""
from typing import Optional, Tuple

from PyQt5.QtCore import QObject, pyqtSignal

from planmark.config import EngineConfig
from planmark.core.viewport import RenderInfo, Viewport


class ViewController(QObject):
    """Owns the Viewport for the current page and keeps it in sync with the renderer."""

    # Signals
    page_changed = pyqtSignal(int)  # 1-based page number
    zoom_changed = pyqtSignal(float)  # display zoom scale
    view_changed = pyqtSignal()  # any pan/zoom/page change

    def __init__(self, renderer=None, config: Optional[EngineConfig] = None,
                 parent: Optional[QObject] = None):
        """
        Args:
            renderer: Anything with render_info(page_number, zoom) -> RenderInfo
            config: Engine settings; defaults are used when omitted
        """
        super().__init__(parent)
        self.renderer = renderer
        self.config = config or EngineConfig()
        self.viewport = Viewport(self.config.min_zoom, self.config.max_zoom)

        # Pages are rasterised once at this zoom; zoom_scale is applied on top
        self.render_zoom: float = self.config.default_render_zoom

        self.current_page: int = 1
        self.total_pages: int = 0

    def set_document_info(self, total_pages: int) -> None:
        """
        Set document information for navigation.

        Args:
            total_pages: Total number of pages in the document
        """
        self.total_pages = total_pages
        self.current_page = 1
        self.viewport.reset()
        if total_pages > 0:
            self.refresh_render_info()

    def set_page(self, page_number: int) -> bool:
        """
        Switch to a page.

        Args:
            page_number: 1-based page number

        Returns:
            True if the page changed
        """
        if not 1 <= page_number <= max(self.total_pages, 1):
            return False
        if page_number == self.current_page:
            return False

        self.current_page = page_number
        self.refresh_render_info()
        self.page_changed.emit(page_number)
        self.view_changed.emit()
        return True

    def next_page(self) -> bool:
        return self.set_page(self.current_page + 1)

    def previous_page(self) -> bool:
        return self.set_page(self.current_page - 1)

    def refresh_render_info(self) -> Optional[RenderInfo]:
        """Re-query the renderer for the current page."""
        if self.renderer is None:
            return None
        info = self.renderer.render_info(self.current_page, self.render_zoom)
        self.viewport.apply_render_info(info)
        return info

    # ------------------------------------------------------------------
    # Zoom and pan
    # ------------------------------------------------------------------

    def set_zoom(self, zoom: float) -> float:
        applied = self.viewport.set_zoom(zoom)
        self._zoomed()
        return applied

    def get_zoom_percent(self) -> int:
        return int(round(self.viewport.zoom_scale * 100))

    def adjust_zoom(self, delta: int) -> int:
        """
        Adjust zoom by delta percentage.

        Args:
            delta: Percentage change (+/- value)

        Returns:
            New zoom percentage
        """
        self.set_zoom((self.get_zoom_percent() + delta) / 100.0)
        return self.get_zoom_percent()

    def zoom_at(self, factor: float, anchor_x: float, anchor_y: float) -> float:
        """Zoom by `factor` around a screen position."""
        applied = self.viewport.zoom_by(factor, anchor_x, anchor_y)
        self._zoomed()
        return applied

    def wheel_zoom(self, angle_delta: int, anchor_x: float, anchor_y: float) -> float:
        """Mouse-wheel zoom: one notch in or out around the cursor."""
        if angle_delta == 0:
            return self.viewport.zoom_scale
        factor = self.config.wheel_zoom_in if angle_delta > 0 else self.config.wheel_zoom_out
        return self.zoom_at(factor, anchor_x, anchor_y)

    def pan_by(self, dx: float, dy: float) -> None:
        self.viewport.pan_by(dx, dy)
        self.view_changed.emit()

    def reset_view(self) -> None:
        """Back to 100% with no pan."""
        self.viewport.reset()
        self._zoomed()

    def set_container_origin(self, x: float, y: float) -> None:
        self.viewport.set_container_origin(x, y)
        self.view_changed.emit()

    # ------------------------------------------------------------------

    def to_document_space(self, screen_x: float, screen_y: float) -> Tuple[float, float]:
        return self.viewport.to_document_space(screen_x, screen_y)

    def to_screen_space(self, doc_x: float, doc_y: float) -> Tuple[float, float]:
        return self.viewport.to_screen_space(doc_x, doc_y)

    def _zoomed(self) -> None:
        self.zoom_changed.emit(self.viewport.zoom_scale)
        self.view_changed.emit()
