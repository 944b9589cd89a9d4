import pytest

from planmark.core.viewport import RenderInfo, Viewport


def _viewport(zoom=1.5, pan=(30.0, -12.0), origin=(8.0, 4.0), scale=2.0):
    viewport = Viewport()
    viewport.apply_render_info(RenderInfo(1224.0, 1584.0, scale))
    viewport.set_zoom(zoom)
    viewport.set_pan(*pan)
    viewport.set_container_origin(*origin)
    return viewport


def test_round_trip_is_exact_within_float_epsilon():
    viewport = _viewport()
    for doc in [(0.0, 0.0), (12.5, 99.25), (-40.0, 612.0), (1e4, 3.3)]:
        screen = viewport.to_screen_space(*doc)
        back = viewport.to_document_space(*screen)
        assert back == pytest.approx(doc, abs=1e-9)


def test_to_document_space_formula():
    viewport = _viewport(zoom=2.0, pan=(10.0, 20.0), origin=(5.0, 5.0), scale=1.5)
    doc_x, doc_y = viewport.to_document_space(65.0, 95.0)
    assert doc_x == pytest.approx((65.0 - 5.0 - 10.0) / 3.0)
    assert doc_y == pytest.approx((95.0 - 5.0 - 20.0) / 3.0)


def test_zoom_is_clamped_and_pan_is_not():
    viewport = Viewport()
    assert viewport.set_zoom(50) == 10.0
    assert viewport.set_zoom(0.001) == 0.1
    viewport.set_pan(-1e6, 1e6)
    assert (viewport.pan_x, viewport.pan_y) == (-1e6, 1e6)


def test_zoom_by_keeps_anchor_fixed():
    viewport = _viewport()
    anchor = (400.0, 300.0)
    before = viewport.to_document_space(*anchor)
    viewport.zoom_by(1.1, *anchor)
    assert viewport.zoom_scale == pytest.approx(1.65)
    assert viewport.to_document_space(*anchor) == pytest.approx(before)


def test_zoom_by_at_the_limit_does_not_drift():
    viewport = _viewport(zoom=10.0)
    before = viewport.to_document_space(100.0, 100.0)
    viewport.zoom_by(1.1, 100.0, 100.0)
    assert viewport.zoom_scale == 10.0
    assert viewport.to_document_space(100.0, 100.0) == pytest.approx(before)


def test_screen_length_shrinks_in_document_space_when_zoomed_in():
    viewport = _viewport(zoom=2.5, scale=2.0)
    assert viewport.screen_to_document_length(5) == pytest.approx(1.0)


def test_reset_and_render_info():
    viewport = _viewport()
    viewport.reset()
    assert (viewport.zoom_scale, viewport.pan_x, viewport.pan_y) == (1.0, 0.0, 0.0)
    assert viewport.screen_page_size == (1224.0, 1584.0)

    with pytest.raises(ValueError):
        viewport.apply_render_info(RenderInfo(10, 10, 0))
