"""
Floorplan page rendering on PyMuPDF.
"""
from typing import Dict, Optional, Tuple

import fitz  # PyMuPDF
from PyQt5.QtGui import QImage, QPixmap

from planmark.core.errors import DocumentError
from planmark.core.viewport import RenderInfo
from planmark.utils.logger import logger


class PdfPageRenderer:
    """
    Opens a floorplan document and renders its pages.

    Page numbers are 1-based. Document space is PDF points, so a page
    rendered at zoom z has a document-to-render scale of z.
    """

    def __init__(self, max_cache_size: int = 3):
        self.doc: Optional[fitz.Document] = None
        self.file_path: Optional[str] = None

        # (page_number, zoom, dark_mode) -> pixmap, oldest first
        self._pixmap_cache: Dict[Tuple[int, float, bool], QPixmap] = {}
        self._max_cache_size = max_cache_size

    @property
    def page_count(self) -> int:
        return self.doc.page_count if self.doc else 0

    def open(self, file_path: str) -> int:
        """
        Load a document.

        Args:
            file_path: Path to the PDF file

        Returns:
            Number of pages

        Raises:
            DocumentError: the file cannot be opened
        """
        if self.doc:
            self.close()

        try:
            self.doc = fitz.open(file_path)
        except (RuntimeError, ValueError, OSError) as e:
            raise DocumentError(f"Error loading {file_path}: {e}") from e

        self.file_path = file_path
        logger.info("Opened %s (%d pages)", file_path, self.doc.page_count)
        return self.doc.page_count

    def close(self) -> None:
        """Close the current document and clear all state."""
        if self.doc:
            self.doc.close()
        self.doc = None
        self.file_path = None
        self._pixmap_cache.clear()

    def page_size(self, page_number: int) -> Tuple[float, float]:
        """Size of a page in document units (points)."""
        rect = self._page(page_number).rect
        return rect.width, rect.height

    def render_info(self, page_number: int, zoom: float) -> RenderInfo:
        width, height = self.page_size(page_number)
        return RenderInfo(
            rendered_width=width * zoom,
            rendered_height=height * zoom,
            document_to_render_scale=zoom,
        )

    def render_pixmap(self, page_number: int, zoom: float,
                      dark_mode: bool = False) -> QPixmap:
        """
        Render a page to a QPixmap at the specified zoom level.

        Args:
            page_number: 1-based page number
            zoom: Zoom factor (1.0 = 100%)
            dark_mode: Whether to invert colors

        Returns:
            QPixmap of the rendered page
        """
        cache_key = (page_number, zoom, dark_mode)
        if cache_key in self._pixmap_cache:
            return self._pixmap_cache[cache_key]

        page = self._page(page_number)
        pix = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
        img = QImage(
            pix.samples, pix.width, pix.height, pix.stride, QImage.Format_RGB888
        ).copy()

        if dark_mode:
            img.invertPixels()

        pixmap = QPixmap.fromImage(img)

        self._pixmap_cache[cache_key] = pixmap
        if len(self._pixmap_cache) > self._max_cache_size:
            oldest_key = next(iter(self._pixmap_cache))
            del self._pixmap_cache[oldest_key]

        return pixmap

    def _page(self, page_number: int) -> fitz.Page:
        if not self.doc:
            raise DocumentError("No document is open")
        if not 1 <= page_number <= self.doc.page_count:
            raise DocumentError(
                f"Page {page_number} is out of range (1-{self.doc.page_count})"
            )
        return self.doc.load_page(page_number - 1)
