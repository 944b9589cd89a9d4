"""
Document-space / screen-space coordinate transform.

Document space is the fixed coordinate system of the page (PDF points).
Screen space is pixels inside the viewer widget. The page renderer fixes
`document_to_render_scale` for a given render zoom; `zoom_scale` and the pan
offset are applied on top of it for display only.
"""
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class RenderInfo:
    """What the page renderer reports for a page at a given zoom."""
    rendered_width: float
    rendered_height: float
    document_to_render_scale: float


class Viewport:
    """Converts between document and screen coordinates."""

    def __init__(self, min_zoom: float = 0.1, max_zoom: float = 10.0):
        if min_zoom <= 0 or max_zoom < min_zoom:
            raise ValueError(f"Invalid zoom bounds [{min_zoom}, {max_zoom}]")
        self.min_zoom = min_zoom
        self.max_zoom = max_zoom

        self.zoom_scale: float = 1.0
        self.pan_x: float = 0.0
        self.pan_y: float = 0.0

        # Offset of the page container inside the widget
        self.container_origin_x: float = 0.0
        self.container_origin_y: float = 0.0

        # Fixed by the page renderer
        self.page_render_width: float = 0.0
        self.page_render_height: float = 0.0
        self.document_to_render_scale: float = 1.0

    @property
    def effective_scale(self) -> float:
        """Screen pixels per document unit."""
        return self.document_to_render_scale * self.zoom_scale

    def to_document_space(self, screen_x: float, screen_y: float) -> Tuple[float, float]:
        scale = self.effective_scale
        doc_x = (screen_x - self.container_origin_x - self.pan_x) / scale
        doc_y = (screen_y - self.container_origin_y - self.pan_y) / scale
        return doc_x, doc_y

    def to_screen_space(self, doc_x: float, doc_y: float) -> Tuple[float, float]:
        scale = self.effective_scale
        screen_x = doc_x * scale + self.pan_x + self.container_origin_x
        screen_y = doc_y * scale + self.pan_y + self.container_origin_y
        return screen_x, screen_y

    def screen_to_document_length(self, pixels: float) -> float:
        """Length in document units that spans `pixels` on screen."""
        return pixels / self.effective_scale

    def clamp_zoom(self, zoom: float) -> float:
        return max(self.min_zoom, min(self.max_zoom, zoom))

    def set_zoom(self, zoom: float) -> float:
        """
        Set the zoom scale, clamped to the configured bounds.

        Returns:
            The zoom actually applied
        """
        self.zoom_scale = self.clamp_zoom(zoom)
        return self.zoom_scale

    def zoom_by(self, factor: float, anchor_x: float, anchor_y: float) -> float:
        """
        Multiply the zoom by `factor`, keeping the document point under the
        screen position (anchor_x, anchor_y) fixed.
        """
        doc_x, doc_y = self.to_document_space(anchor_x, anchor_y)
        self.set_zoom(self.zoom_scale * factor)

        # Re-solve the pan so doc point maps back onto the anchor
        scale = self.effective_scale
        self.pan_x = anchor_x - self.container_origin_x - doc_x * scale
        self.pan_y = anchor_y - self.container_origin_y - doc_y * scale
        return self.zoom_scale

    def pan_by(self, dx: float, dy: float) -> None:
        self.pan_x += dx
        self.pan_y += dy

    def set_pan(self, pan_x: float, pan_y: float) -> None:
        self.pan_x = pan_x
        self.pan_y = pan_y

    def set_container_origin(self, x: float, y: float) -> None:
        self.container_origin_x = x
        self.container_origin_y = y

    def reset(self) -> None:
        """Return to 100% zoom with no pan."""
        self.zoom_scale = 1.0
        self.pan_x = 0.0
        self.pan_y = 0.0

    def apply_render_info(self, info: RenderInfo) -> None:
        if info.document_to_render_scale <= 0:
            raise ValueError("document_to_render_scale must be positive")
        self.page_render_width = info.rendered_width
        self.page_render_height = info.rendered_height
        self.document_to_render_scale = info.document_to_render_scale

    @property
    def screen_page_size(self) -> Tuple[float, float]:
        """Size of the rendered page on screen after zoom."""
        return (self.page_render_width * self.zoom_scale,
                self.page_render_height * self.zoom_scale)
