"""
Floorplan document rendering.
"""
from .page_renderer import PdfPageRenderer

__all__ = ['PdfPageRenderer']
