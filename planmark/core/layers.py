"""
Named, orderable marker layers.
"""
import copy
import itertools
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from planmark.core.errors import LayerLockedError, NotFoundError, ValidationError
from planmark.utils.logger import logger

# Paint position of markers that belong to no named layer
BASE_LAYER_ORDER = -1


class OrphanPolicy(Enum):
    """What happens to a deleted layer's markers."""
    REASSIGN = "reassign"
    DELETE_MARKERS = "delete_markers"


class LayerAction(Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class Layer:
    id: str
    name: str
    color: str
    visible: bool = True
    locked: bool = False
    order_index: int = 0
    opacity: float = 1.0

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'color': self.color,
            'visible': self.visible,
            'locked': self.locked,
            'order_index': self.order_index,
            'opacity': self.opacity,
        }

    @staticmethod
    def from_dict(data: dict) -> "Layer":
        return Layer(
            id=str(data['id']),
            name=data['name'],
            color=data.get('color', "#3B82F6"),
            visible=data.get('visible', True),
            locked=data.get('locked', False),
            order_index=int(data.get('order_index', 0)),
            opacity=float(data.get('opacity', 1.0)),
        )


@dataclass(frozen=True)
class LayerChange:
    """Notification handed to layer listeners after every change."""
    action: LayerAction
    layer: Layer
    previous: Optional[Layer] = None


LayerListener = Callable[[LayerChange], None]
OrphanHandler = Callable[[str, OrphanPolicy, Optional[str]], None]


class LayerManager:
    """Owns the document's layers and their paint order."""

    def __init__(self):
        self._layers: Dict[str, Layer] = {}
        self._local_ids = itertools.count(1)
        self._listeners: List[LayerListener] = []
        self._orphan_handlers: List[OrphanHandler] = []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, layer_id: str) -> Layer:
        layer = self._layers.get(layer_id)
        if layer is None:
            raise NotFoundError("Layer", layer_id)
        return layer

    def find(self, layer_id: Optional[str]) -> Optional[Layer]:
        if layer_id is None:
            return None
        return self._layers.get(layer_id)

    def ordered(self) -> List[Layer]:
        """Layers in ascending paint order."""
        return sorted(self._layers.values(), key=lambda layer: layer.order_index)

    def __len__(self) -> int:
        return len(self._layers)

    def __contains__(self, layer_id) -> bool:
        return layer_id in self._layers

    def is_visible(self, layer_id: Optional[str]) -> bool:
        layer = self.find(layer_id)
        return layer.visible if layer else True

    def is_locked(self, layer_id: Optional[str]) -> bool:
        layer = self.find(layer_id)
        return layer.locked if layer else False

    def opacity_of(self, layer_id: Optional[str]) -> float:
        layer = self.find(layer_id)
        return layer.opacity if layer else 1.0

    def order_of(self, layer_id: Optional[str]) -> int:
        """Paint position; markers outside any known layer paint first."""
        layer = self.find(layer_id)
        return layer.order_index if layer else BASE_LAYER_ORDER

    def ensure_unlocked(self, layer_id: Optional[str]) -> None:
        if self.is_locked(layer_id):
            raise LayerLockedError(layer_id, f"Layer '{self.get(layer_id).name}' is locked")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, name: str, color: str = "#3B82F6", opacity: float = 1.0) -> Layer:
        """Create a layer painted above all existing ones."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Layer name cannot be empty")
        self._check_opacity(opacity)

        order_index = max((layer.order_index for layer in self._layers.values()), default=-1) + 1
        layer = Layer(
            id=f"local-layer-{next(self._local_ids)}",
            name=name,
            color=color,
            order_index=order_index,
            opacity=opacity,
        )
        self._layers[layer.id] = layer
        logger.debug("Created layer %s (%s) at order %d", layer.id, name, order_index)
        self._notify(LayerAction.CREATE, layer)
        return layer

    def set_visible(self, layer_id: str, visible: bool) -> Layer:
        return self._modify(layer_id, visible=bool(visible))

    def set_locked(self, layer_id: str, locked: bool) -> Layer:
        return self._modify(layer_id, locked=bool(locked))

    def set_opacity(self, layer_id: str, opacity: float) -> Layer:
        self._check_opacity(opacity)
        return self._modify(layer_id, opacity=float(opacity))

    def rename(self, layer_id: str, name: str) -> Layer:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Layer name cannot be empty")
        return self._modify(layer_id, name=name)

    def set_color(self, layer_id: str, color: str) -> Layer:
        return self._modify(layer_id, color=color)

    def reorder(self, layer_id: str, new_index: int) -> List[Layer]:
        """
        Move a layer to `new_index` in paint order and renumber every layer
        contiguously from 0, keeping the relative order of the others.
        """
        layer = self.get(layer_id)
        ordered = [other for other in self.ordered() if other.id != layer_id]
        new_index = max(0, min(len(ordered), new_index))
        ordered.insert(new_index, layer)

        for index, item in enumerate(ordered):
            if item.order_index != index:
                self._modify(item.id, order_index=index)
        return self.ordered()

    def delete(self, layer_id: str, policy: OrphanPolicy,
               reassign_to: Optional[str] = None) -> Layer:
        """
        Delete a layer after its markers have been dealt with.

        Args:
            layer_id: Layer to delete
            policy: REASSIGN moves markers to `reassign_to` (None = base
                layer); DELETE_MARKERS removes them
            reassign_to: Target layer for REASSIGN

        Raises:
            LayerLockedError: the layer or the reassignment target is locked
        """
        layer = self.get(layer_id)
        if not isinstance(policy, OrphanPolicy):
            raise ValueError("An explicit OrphanPolicy is required to delete a layer")
        if layer.locked:
            raise LayerLockedError(layer_id, f"Layer '{layer.name}' is locked")
        if policy == OrphanPolicy.REASSIGN:
            if reassign_to == layer_id:
                raise ValidationError("Cannot reassign markers to the layer being deleted")
            if reassign_to is not None:
                self.get(reassign_to)
                self.ensure_unlocked(reassign_to)

        for handler in list(self._orphan_handlers):
            handler(layer_id, policy, reassign_to)

        removed = self._layers.pop(layer_id)
        logger.info("Deleted layer %s (%s), markers %s", layer_id, removed.name, policy.value)
        self._notify(LayerAction.DELETE, removed)
        return removed

    def remap_id(self, old_id: str, new_id: str) -> None:
        """Swap a local id for the persisted one."""
        layer = self._layers.pop(old_id, None)
        if layer is None:
            return
        layer.id = new_id
        self._layers[new_id] = layer

    def load(self, layers: Iterable[Layer]) -> None:
        """Replace all layers with persisted ones, without notifying."""
        self._layers = {layer.id: copy.deepcopy(layer) for layer in layers}

    def restore(self, layer: Layer) -> None:
        """Put a layer back exactly as given, without notifying."""
        self._layers[layer.id] = copy.deepcopy(layer)

    def discard(self, layer_id: str) -> None:
        """Drop a layer without notifying or running orphan handlers."""
        self._layers.pop(layer_id, None)

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def add_listener(self, listener: LayerListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: LayerListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def add_orphan_handler(self, handler: OrphanHandler) -> None:
        self._orphan_handlers.append(handler)

    # ------------------------------------------------------------------

    def _modify(self, layer_id: str, **changes) -> Layer:
        layer = self.get(layer_id)
        previous = copy.deepcopy(layer)
        for key, value in changes.items():
            setattr(layer, key, value)
        if layer != previous:
            self._notify(LayerAction.UPDATE, layer, previous)
        return layer

    def _notify(self, action: LayerAction, layer: Layer, previous: Optional[Layer] = None) -> None:
        change = LayerChange(action, copy.deepcopy(layer), previous)
        for listener in list(self._listeners):
            listener(change)

    @staticmethod
    def _check_opacity(opacity: float) -> None:
        if not 0.0 <= opacity <= 1.0:
            raise ValidationError("Layer opacity must be within [0, 1]")
