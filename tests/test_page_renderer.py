import fitz
import pytest

from planmark.core.document.page_renderer import PdfPageRenderer
from planmark.core.errors import DocumentError


def _floorplan_pdf(path, pages=2):
    doc = fitz.open()
    for _ in range(pages):
        page = doc.new_page(width=300, height=200)
        page.draw_rect(fitz.Rect(20, 20, 280, 180), color=(0, 0, 0))
    doc.save(str(path))
    doc.close()
    return str(path)


def test_open_and_measure_pages(tmp_path):
    renderer = PdfPageRenderer()
    assert renderer.page_count == 0

    assert renderer.open(_floorplan_pdf(tmp_path / "plan.pdf")) == 2
    assert renderer.page_size(1) == (300, 200)

    info = renderer.render_info(2, 1.5)
    assert (info.rendered_width, info.rendered_height) == (450, 300)
    assert info.document_to_render_scale == 1.5


def test_render_pixmap_is_cached(tmp_path):
    renderer = PdfPageRenderer(max_cache_size=2)
    renderer.open(_floorplan_pdf(tmp_path / "plan.pdf"))

    first = renderer.render_pixmap(1, 2.0)
    assert (first.width(), first.height()) == (600, 400)
    assert renderer.render_pixmap(1, 2.0) is first

    renderer.render_pixmap(1, 1.0)
    renderer.render_pixmap(2, 1.0)
    assert renderer.render_pixmap(1, 2.0) is not first


def test_missing_pages_and_documents_raise(tmp_path):
    renderer = PdfPageRenderer()
    with pytest.raises(DocumentError):
        renderer.page_size(1)
    with pytest.raises(DocumentError):
        renderer.open(str(tmp_path / "missing.pdf"))

    renderer.open(_floorplan_pdf(tmp_path / "plan.pdf", pages=1))
    with pytest.raises(DocumentError):
        renderer.render_pixmap(2, 1.0)

    renderer.close()
    assert renderer.page_count == 0
