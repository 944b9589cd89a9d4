import sys

import pytest

from planmark.utils.paths import (
    get_annotations_dir,
    get_app_data_dir,
    get_config_dir,
    get_logs_dir,
)

pytestmark = pytest.mark.skipif(sys.platform in ("win32", "darwin"),
                                reason="XDG directories are Linux only")


def test_directories_follow_xdg_variables(isolated_user_dirs):
    data_root = isolated_user_dirs / "data" / "Planmark"

    assert get_app_data_dir() == data_root
    assert get_annotations_dir() == data_root / "annotations"
    assert get_logs_dir() == data_root / "logs"
    assert get_config_dir() == isolated_user_dirs / "config" / "Planmark"
    assert get_logs_dir().is_dir() and get_config_dir().is_dir()


def test_missing_xdg_variables_fall_back_to_home(tmp_path, monkeypatch):
    monkeypatch.delenv("XDG_DATA_HOME")
    monkeypatch.delenv("XDG_CONFIG_HOME")
    monkeypatch.setenv("HOME", str(tmp_path))

    assert get_app_data_dir("Other") == tmp_path / ".local" / "share" / "Other"
    assert get_config_dir("Other") == tmp_path / ".config" / "Other"
