"""
Utility functions and helpers.
"""
from .logger import logger, setup_file_logging
from .notifications import Notification, NotificationCenter, NoticeLevel, NoticeType
from .paths import get_annotations_dir, get_app_data_dir, get_config_dir, get_logs_dir

__all__ = [
    # Logging
    'logger',
    'setup_file_logging',

    # Directories
    'get_app_data_dir',
    'get_config_dir',
    'get_annotations_dir',
    'get_logs_dir',

    # Notifications
    'Notification',
    'NotificationCenter',
    'NoticeLevel',
    'NoticeType',
]
