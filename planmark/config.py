"""
Engine settings.

Defaults live on EngineConfig; a `config.json` in the per-user config
directory may override any of them.
"""
import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from planmark.utils.logger import logger
from planmark.utils.paths import get_config_dir

CONFIG_FILE_NAME = "config.json"


@dataclass
class EngineConfig:
    # Viewport
    min_zoom: float = 0.1
    max_zoom: float = 10.0
    wheel_zoom_in: float = 1.1
    wheel_zoom_out: float = 0.9
    default_render_zoom: float = 2.0

    # History
    history_depth: int = 50

    # Interaction, in screen pixels
    shape_threshold_px: float = 5.0
    hit_radius_px: float = 12.0
    handle_radius_px: float = 8.0
    line_hit_tolerance_px: float = 5.0

    # Geometry, in document units
    degenerate_epsilon: float = 1.0
    note_min_width: float = 100.0
    note_min_height: float = 30.0
    duplicate_offset: float = 20.0
    camera_default_fov: float = 90.0
    camera_default_range: float = 60.0
    camera_min_fov: float = 10.0
    camera_min_range: float = 20.0

    # Defaults for new markers
    default_stroke_color: str = "#FF0000"
    default_stroke_width: float = 2.0
    default_font_size: float = 14.0
    default_font_family: str = "Arial"

    # Persistence
    sync_debounce_ms: Optional[int] = 400

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", ", ".join(unknown))
        return cls(**{k: v for k, v in data.items() if k in known})


def load_config(path: Optional[Path] = None) -> EngineConfig:
    """
    Load settings from JSON, falling back to defaults.

    Args:
        path: Optional explicit config file; defaults to the user config dir

    Returns:
        The effective configuration
    """
    if path is None:
        path = get_config_dir() / CONFIG_FILE_NAME
    path = Path(path)

    if not path.exists():
        return EngineConfig()

    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Failed to read config %s, using defaults: %s", path, e)
        return EngineConfig()

    if not isinstance(data, dict):
        logger.warning("Config %s is not a JSON object, using defaults", path)
        return EngineConfig()

    return EngineConfig.from_dict(data)


def save_config(config: EngineConfig, path: Optional[Path] = None) -> Path:
    if path is None:
        path = get_config_dir() / CONFIG_FILE_NAME
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(config.to_dict(), f, indent=2)
    return path
