import io
import pytest
import pdfplumber
from unittest.mock import patch
from reportlab.lib.pagesizes import A4
from delivery_note.models.note import LineItem
from delivery_note.services.pdf_export import (
    PDFExportError,
    decode_logo,
    pdf_filename,
    render_pdf,
    render_print_html,
)


def _open_pdf(content: bytes):
    return pdfplumber.open(io.BytesIO(content))


@pytest.mark.unit
def test_render_pdf_is_single_a4_page(sample_note):
    content = render_pdf(sample_note)

    assert content.startswith(b"%PDF")
    with _open_pdf(content) as pdf:
        assert len(pdf.pages) == 1
        page = pdf.pages[0]
        assert page.width == pytest.approx(A4[0], abs=0.5)
        assert page.height == pytest.approx(A4[1], abs=0.5)


@pytest.mark.unit
def test_render_pdf_with_logo(sample_note, png_logo_data_url):
    sample_note.settings.logo = png_logo_data_url

    with _open_pdf(render_pdf(sample_note)) as pdf:
        assert len(pdf.pages[0].images) == 1


@pytest.mark.unit
def test_render_pdf_skips_broken_logo(sample_note):
    sample_note.settings.logo = "data:image/png;base64,not-an-image"

    with _open_pdf(render_pdf(sample_note)) as pdf:
        assert len(pdf.pages) == 1
        assert pdf.pages[0].images == []


@pytest.mark.unit
def test_render_pdf_long_item_list_spans_pages(sample_note):
    sample_note.items = [
        LineItem(seq=i + 1, name=f"商品{i + 1}", quantity="1", price="1") for i in range(80)
    ]

    with _open_pdf(render_pdf(sample_note)) as pdf:
        assert len(pdf.pages) > 1


@pytest.mark.unit
def test_render_pdf_escapes_markup(sample_note):
    sample_note.formData.customerName = "<b>A & B</b>"

    assert render_pdf(sample_note).startswith(b"%PDF")


@pytest.mark.unit
def test_render_pdf_failure(sample_note):
    with patch("delivery_note.services.pdf_export.SimpleDocTemplate.build",
               side_effect=RuntimeError("layout error")):
        with pytest.raises(PDFExportError) as exc_info:
            render_pdf(sample_note)

    assert str(exc_info.value) == "PDF导出失败：layout error"


@pytest.mark.unit
def test_pdf_filename(sample_note):
    assert pdf_filename(sample_note) == "出库单_20260129205500001.pdf"


@pytest.mark.unit
def test_decode_logo(png_logo_data_url):
    assert decode_logo(None) is None
    assert decode_logo(png_logo_data_url).startswith(b"\x89PNG")
    with pytest.raises(ValueError):
        decode_logo("data:text/plain;base64,AAAA")
    with pytest.raises(ValueError):
        decode_logo("https://example.com/logo.png")


@pytest.mark.unit
def test_render_print_html(sample_note):
    page = render_print_html(sample_note)

    assert "@page { size: A4; margin: 10mm; }" in page
    assert "window.print()" in page
    assert "<h2>出库单</h2>" in page
    assert "20260129205500001" in page
    assert "<td>100.00</td>" in page
    assert "<td>35.00</td>" in page
    assert "¥135.00" in page
    assert "¥17.55" in page
    assert "¥152.55" in page
    assert "壹佰伍拾贰元伍角伍分" in page
    assert "税率（13%）" in page


@pytest.mark.unit
def test_render_print_html_escapes_user_text(sample_note):
    sample_note.formData.customerName = "<script>alert(1)</script>"
    sample_note.settings.logo = "javascript:alert(1)"

    page = render_print_html(sample_note)

    assert "<script>alert(1)</script>" not in page
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in page
    assert "javascript:alert(1)" not in page


@pytest.mark.unit
def test_render_print_html_autoescapes_template_fields(sample_note, png_logo_data_url):
    sample_note.settings.companyName = "A & B <公司>"
    sample_note.items[0].name = '"螺丝" <M6>'
    sample_note.settings.logo = png_logo_data_url

    page = render_print_html(sample_note)

    assert "A &amp; B &lt;公司&gt;" in page
    assert "<td>&#34;螺丝&#34; &lt;M6&gt;</td>" in page
    assert f'<img src="{png_logo_data_url}" alt="logo">' in page
