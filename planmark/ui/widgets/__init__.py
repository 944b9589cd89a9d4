"""
Custom widgets for floorplan viewing and annotation.
"""
from .floorplan_canvas import FloorplanCanvas

__all__ = ['FloorplanCanvas']
