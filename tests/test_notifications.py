from planmark.core.errors import (
    CalibrationStateError,
    DegenerateShapeError,
    LayerLockedError,
    NotFoundError,
    PersistenceError,
    PlanmarkError,
)
from planmark.utils.notifications import NoticeLevel, NoticeType, NotificationCenter


def test_errors_map_to_notice_types():
    center = NotificationCenter()
    cases = [
        (LayerLockedError("7"), NoticeType.LAYER_LOCKED, NoticeLevel.WARNING),
        (PersistenceError("disk full"), NoticeType.SAVE_FAILED, NoticeLevel.ERROR),
        (NotFoundError("Marker", "3"), NoticeType.NOT_FOUND, NoticeLevel.WARNING),
        (CalibrationStateError("no"), NoticeType.CALIBRATION, NoticeLevel.WARNING),
        (DegenerateShapeError("tiny"), NoticeType.INVALID_INPUT, NoticeLevel.WARNING),
        (PlanmarkError("boom"), NoticeType.GENERAL, NoticeLevel.ERROR),
    ]
    for error, notice_type, level in cases:
        notice = center.notify_error(error)
        assert (notice.notice_type, notice.level) == (notice_type, level)
        assert notice.title == error.title


def test_retryable_errors_say_the_change_was_undone():
    center = NotificationCenter()
    notice = center.notify_error(PersistenceError("Network unreachable"))
    assert notice.retryable
    assert notice.message.startswith("Network unreachable. Your change was undone")

    notice = center.notify_error(NotFoundError("Marker", "3"))
    assert not notice.retryable
    assert notice.message == "Marker 3 not found"


def test_suppressed_types_are_counted_but_not_shown():
    center = NotificationCenter()
    shown = []
    center.notification_posted.connect(shown.append)

    center.suppress(NoticeType.LAYER_LOCKED)
    assert center.notify_error(LayerLockedError("1")) is None
    center.info("Saved", "All changes saved")

    assert center.count(NoticeType.LAYER_LOCKED) == 1
    assert [n.title for n in shown] == ["Saved"]

    center.reset_all()
    assert center.should_show(NoticeType.LAYER_LOCKED)
    assert center.notify_error(LayerLockedError("1")) is not None
