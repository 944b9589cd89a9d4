"""
Core business logic for the floorplan annotation engine.
"""
from .calibration import CalibrationEngine, CalibrationRecord, CalibrationState
from .layers import Layer, LayerManager, OrphanPolicy
from .markers import AnnotationStore, HistoryManager, Marker, MarkerKind
from .viewport import RenderInfo, Viewport

__all__ = [
    "AnnotationStore",
    "CalibrationEngine",
    "CalibrationRecord",
    "CalibrationState",
    "HistoryManager",
    "Layer",
    "LayerManager",
    "Marker",
    "MarkerKind",
    "OrphanPolicy",
    "RenderInfo",
    "Viewport",
]
