"""
Marker model, storage and undo/redo history.
"""
from .history import HistoryEntry, HistoryManager
from .models import Marker, MarkerKind
from .store import AnnotationStore, StoreMutation

__all__ = [
    'Marker',
    'MarkerKind',
    'HistoryEntry',
    'HistoryManager',
    'AnnotationStore',
    'StoreMutation',
]
