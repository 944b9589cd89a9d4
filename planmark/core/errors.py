"""
Error taxonomy for the annotation engine.

Every error is recoverable: controllers catch these and turn them into
transient notifications instead of letting them escape the event loop.
"""
from typing import Optional


class PlanmarkError(Exception):
    """Base class for all engine errors."""

    title = "Annotation Error"
    retryable = False


class ValidationError(PlanmarkError):
    """A marker or layer carries fields that violate its kind's rules."""

    title = "Invalid Annotation"


class DegenerateShapeError(ValidationError):
    """A sized shape is smaller than the minimum size at commit time."""

    title = "Shape Too Small"


class DegenerateCalibrationError(PlanmarkError):
    """The two calibration points coincide."""

    title = "Calibration Failed"


class CalibrationStateError(PlanmarkError):
    """A calibration step was attempted out of order."""

    title = "Calibration Failed"


class LayerLockedError(PlanmarkError):
    """A mutation targeted a marker on a locked layer."""

    title = "Layer Locked"

    def __init__(self, layer_id: Optional[str], message: Optional[str] = None):
        self.layer_id = layer_id
        super().__init__(message or f"Layer {layer_id} is locked")


class NotFoundError(PlanmarkError):
    """An operation referenced an id that is no longer present."""

    title = "Not Found"

    def __init__(self, entity: str, entity_id, message: Optional[str] = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message or f"{entity} {entity_id} not found")


class PersistenceError(PlanmarkError):
    """Saving to or loading from the persistence backend failed."""

    title = "Save Failed"
    retryable = True


class DocumentError(PlanmarkError):
    """The floorplan document could not be opened or rendered."""

    title = "Document Error"
