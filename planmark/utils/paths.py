"""
Per-user directories for annotation data, settings and logs.

Every directory is created on first use. On Linux the XDG base
directory variables are honored, so tests and sandboxes can redirect
everything by setting XDG_DATA_HOME and XDG_CONFIG_HOME.
"""
import os
import sys
from pathlib import Path

APP_NAME = "Planmark"


def _platform_base(purpose: str) -> Path:
    """Root under which the app directory for `purpose` ("data" or "config") lives."""
    home = Path.home()
    if os.name == 'nt':
        return Path(os.environ.get('APPDATA', str(home)))
    if sys.platform == 'darwin':
        leaf = "Application Support" if purpose == "data" else "Preferences"
        return home / "Library" / leaf
    if purpose == "data":
        return Path(os.environ.get('XDG_DATA_HOME', str(home / ".local" / "share")))
    return Path(os.environ.get('XDG_CONFIG_HOME', str(home / ".config")))


def _ensure(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_app_data_dir(app_name: str = APP_NAME) -> Path:
    """Directory holding annotation files and logs."""
    return _ensure(_platform_base("data") / app_name)


def get_config_dir(app_name: str = APP_NAME) -> Path:
    """Directory holding config.json; nested under app data on Windows."""
    if os.name == 'nt':
        return _ensure(get_app_data_dir(app_name) / "config")
    return _ensure(_platform_base("config") / app_name)


def get_annotations_dir(app_name: str = APP_NAME) -> Path:
    """Directory holding one JSON file of markers per document."""
    return _ensure(get_app_data_dir(app_name) / "annotations")


def get_logs_dir(app_name: str = APP_NAME) -> Path:
    """Directory holding the dated log files."""
    return _ensure(get_app_data_dir(app_name) / "logs")
