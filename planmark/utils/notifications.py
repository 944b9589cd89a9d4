"""
Transient user notifications for recoverable engine errors.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Set

from PyQt5.QtCore import QObject, pyqtSignal

from planmark.core.errors import (
    CalibrationStateError,
    DegenerateCalibrationError,
    LayerLockedError,
    NotFoundError,
    PersistenceError,
    PlanmarkError,
    ValidationError,
)
from planmark.utils.logger import logger


class NoticeLevel(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class NoticeType(Enum):
    """Kinds of notices that can be suppressed for the session."""
    LAYER_LOCKED = "layer_locked"
    SAVE_FAILED = "save_failed"
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    CALIBRATION = "calibration"
    GENERAL = "general"


@dataclass(frozen=True)
class Notification:
    level: NoticeLevel
    notice_type: NoticeType
    title: str
    message: str
    retryable: bool = False


# Error class -> (notice type, level), most specific first
_ERROR_NOTICES = [
    (LayerLockedError, NoticeType.LAYER_LOCKED, NoticeLevel.WARNING),
    (PersistenceError, NoticeType.SAVE_FAILED, NoticeLevel.ERROR),
    (NotFoundError, NoticeType.NOT_FOUND, NoticeLevel.WARNING),
    (DegenerateCalibrationError, NoticeType.CALIBRATION, NoticeLevel.WARNING),
    (CalibrationStateError, NoticeType.CALIBRATION, NoticeLevel.WARNING),
    (ValidationError, NoticeType.INVALID_INPUT, NoticeLevel.WARNING),
]


class NotificationCenter(QObject):
    """
    Collects notices from the controllers and hands them to the UI.

    Notices can be suppressed per type for the rest of the session, the
    same way repeated confirmation dialogs are.
    """

    notification_posted = pyqtSignal(object)

    def __init__(self, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._suppressed: Set[NoticeType] = set()
        self.history: List[Notification] = []
        self._counts: Dict[NoticeType, int] = {}

    def should_show(self, notice_type: NoticeType) -> bool:
        return notice_type not in self._suppressed

    def suppress(self, notice_type: NoticeType) -> None:
        """
        Suppress a notice type for the rest of the session.

        Args:
            notice_type: Type of notice to suppress
        """
        self._suppressed.add(notice_type)

    def reset(self, notice_type: NoticeType) -> None:
        self._suppressed.discard(notice_type)

    def reset_all(self) -> None:
        self._suppressed.clear()

    def count(self, notice_type: NoticeType) -> int:
        return self._counts.get(notice_type, 0)

    def post(self, level: NoticeLevel, title: str, message: str,
             notice_type: NoticeType = NoticeType.GENERAL,
             retryable: bool = False) -> Optional[Notification]:
        """
        Publish a notice.

        Returns:
            The notification, or None if its type is suppressed
        """
        self._counts[notice_type] = self._counts.get(notice_type, 0) + 1
        if not self.should_show(notice_type):
            return None

        notification = Notification(level, notice_type, title, message, retryable)
        self.history.append(notification)
        self.notification_posted.emit(notification)
        return notification

    def info(self, title: str, message: str) -> Optional[Notification]:
        return self.post(NoticeLevel.INFO, title, message)

    def notify_error(self, error: PlanmarkError) -> Optional[Notification]:
        """Turn an engine error into a user-facing notice."""
        notice_type, level = NoticeType.GENERAL, NoticeLevel.ERROR
        for error_class, mapped_type, mapped_level in _ERROR_NOTICES:
            if isinstance(error, error_class):
                notice_type, level = mapped_type, mapped_level
                break

        message = str(error)
        if error.retryable:
            message = f"{message}. Your change was undone; please try again."

        logger.warning("%s: %s", error.title, error)
        return self.post(level, error.title, message, notice_type, error.retryable)
