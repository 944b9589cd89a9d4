"""
Persistence contract and the two bundled backends.

A backend owns ids: `create_*` returns the stored entity with its
persisted id. Network or disk failures surface as PersistenceError and
unknown ids as NotFoundError.
"""
import copy
import hashlib
import json
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from planmark.core.calibration import CalibrationRecord
from planmark.core.errors import NotFoundError, PersistenceError
from planmark.core.layers import Layer
from planmark.core.markers.models import Marker, utc_now
from planmark.utils.logger import logger
from planmark.utils.paths import get_annotations_dir


class PersistenceBackend(ABC):
    """Document-scoped storage for markers, layers and calibrations."""

    @abstractmethod
    def list_markers(self, page_number: int) -> List[Marker]:
        ...

    @abstractmethod
    def create_marker(self, marker: Marker) -> Marker:
        ...

    @abstractmethod
    def update_marker(self, marker_id: str, patch: Dict[str, Any]) -> Marker:
        ...

    @abstractmethod
    def delete_marker(self, marker_id: str) -> None:
        ...

    @abstractmethod
    def list_layers(self) -> List[Layer]:
        ...

    @abstractmethod
    def create_layer(self, layer: Layer) -> Layer:
        ...

    @abstractmethod
    def update_layer(self, layer_id: str, changes: Dict[str, Any]) -> Layer:
        ...

    @abstractmethod
    def delete_layer(self, layer_id: str) -> None:
        ...

    @abstractmethod
    def save_calibration(self, record: CalibrationRecord) -> CalibrationRecord:
        ...

    @abstractmethod
    def list_calibration(self, page_number: int) -> List[CalibrationRecord]:
        ...


class MemoryBackend(PersistenceBackend):
    """Keeps everything in process; ids are sequential integers as strings."""

    def __init__(self):
        self.markers: Dict[str, Marker] = {}
        self.layers: Dict[str, Layer] = {}
        self.calibrations: List[CalibrationRecord] = []
        self._last_id = 0

    def list_markers(self, page_number: int) -> List[Marker]:
        return [copy.deepcopy(m) for m in self.markers.values()
                if m.page_number == page_number]

    def create_marker(self, marker: Marker) -> Marker:
        stored = copy.deepcopy(marker)
        stored.id = self._next_id()
        self.markers[stored.id] = stored
        self._commit()
        return copy.deepcopy(stored)

    def update_marker(self, marker_id: str, patch: Dict[str, Any]) -> Marker:
        current = self.markers.get(marker_id)
        if current is None:
            raise NotFoundError("Marker", marker_id)
        stored = copy.deepcopy(current)
        for key, value in patch.items():
            setattr(stored, key, copy.deepcopy(value))
        stored.version = current.version + 1
        stored.updated_at = utc_now()
        self.markers[marker_id] = stored
        self._commit()
        return copy.deepcopy(stored)

    def delete_marker(self, marker_id: str) -> None:
        if self.markers.pop(marker_id, None) is None:
            raise NotFoundError("Marker", marker_id)
        self._commit()

    def list_layers(self) -> List[Layer]:
        return [copy.deepcopy(layer) for layer in
                sorted(self.layers.values(), key=lambda layer: layer.order_index)]

    def create_layer(self, layer: Layer) -> Layer:
        stored = copy.deepcopy(layer)
        stored.id = self._next_id()
        self.layers[stored.id] = stored
        self._commit()
        return copy.deepcopy(stored)

    def update_layer(self, layer_id: str, changes: Dict[str, Any]) -> Layer:
        layer = self.layers.get(layer_id)
        if layer is None:
            raise NotFoundError("Layer", layer_id)
        for key, value in changes.items():
            setattr(layer, key, value)
        self._commit()
        return copy.deepcopy(layer)

    def delete_layer(self, layer_id: str) -> None:
        if self.layers.pop(layer_id, None) is None:
            raise NotFoundError("Layer", layer_id)
        self._commit()

    def save_calibration(self, record: CalibrationRecord) -> CalibrationRecord:
        saved = CalibrationRecord(
            id=record.id or self._next_id(),
            page_number=record.page_number,
            start_point=record.start_point,
            end_point=record.end_point,
            real_world_distance=record.real_world_distance,
            unit=record.unit,
        )
        self.calibrations.append(saved)
        self._commit()
        return saved

    def list_calibration(self, page_number: int) -> List[CalibrationRecord]:
        return [r for r in self.calibrations if r.page_number == page_number]

    def _next_id(self) -> str:
        self._last_id += 1
        return str(self._last_id)

    def _commit(self) -> None:
        """Hook for subclasses that write through to storage."""


class JsonFileBackend(MemoryBackend):
    """
    Stores one JSON file per document in the application data directory.

    The file name is an MD5 hash of the document path so storage stays
    unique per document regardless of where it lives.
    """

    def __init__(self, document_path: str, file_path: Optional[str] = None):
        super().__init__()
        self.document_path = document_path
        self.file_path = file_path or self.get_json_path(document_path)
        self._load()

    @staticmethod
    def get_json_path(document_path: str) -> str:
        """
        Get the JSON file path for a given document.

        Args:
            document_path: Path to the PDF file

        Returns:
            Path to the corresponding JSON annotations file
        """
        path_hash = hashlib.md5(document_path.encode()).hexdigest()
        return os.path.join(str(get_annotations_dir()), f"{path_hash}.json")

    def has_saved_annotations(self) -> bool:
        return os.path.exists(self.file_path)

    def delete_json_file(self) -> None:
        """Delete the JSON file; a missing file is not an error."""
        if not os.path.exists(self.file_path):
            return
        try:
            os.remove(self.file_path)
        except OSError as e:
            raise PersistenceError(f"Failed to delete {self.file_path}: {e}") from e

    def _load(self) -> None:
        if not os.path.exists(self.file_path):
            return

        try:
            with open(self.file_path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Failed to load annotations: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"Corrupt annotation file {self.file_path}")

        # Verify this is for the correct document
        stored_path = data.get('document_path')
        if stored_path != self.document_path:
            logger.warning("JSON file %s is for a different document: %s",
                           self.file_path, stored_path)

        try:
            self.markers = {str(m['id']): Marker.from_dict(m) for m in data.get('markers', [])}
            self.layers = {str(layer['id']): Layer.from_dict(layer)
                           for layer in data.get('layers', [])}
            self.calibrations = [CalibrationRecord.from_dict(r)
                                 for r in data.get('calibrations', [])]
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError(f"Corrupt annotation file {self.file_path}: {e}") from e

        self._last_id = int(data.get('last_id', 0))
        logger.info("Loaded %d markers and %d layers from %s",
                    len(self.markers), len(self.layers), self.file_path)

    def _commit(self) -> None:
        data = {
            'document_path': self.document_path,
            'last_id': self._last_id,
            'layers': [layer.to_dict() for layer in self.layers.values()],
            'markers': [m.to_dict() for m in self.markers.values()],
            'calibrations': [r.to_dict() for r in self.calibrations],
        }

        try:
            os.makedirs(os.path.dirname(self.file_path) or ".", exist_ok=True)
            tmp_path = f"{self.file_path}.tmp"
            with open(tmp_path, 'w') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.file_path)
        except OSError as e:
            raise PersistenceError(f"Failed to save annotations: {e}") from e
