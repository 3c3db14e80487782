"""
出库单導出

- PDF：使用 reportlab 產生標準 A4 直式文件，邊距 10mm
- 列印：產生可直接列印的 HTML 頁面（載入後自動呼叫 window.print）
"""
import base64
import io
import logging
from pathlib import Path
from typing import List, Optional
from xml.sax.saxutils import escape

from jinja2 import Environment, FileSystemLoader, select_autoescape
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.cidfonts import UnicodeCIDFont
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from delivery_note.config import DEFAULT_DOC_TITLE, PDF_FONT
from delivery_note.models.note import DeliveryNote
from delivery_note.services.calculator import NoteSummary, build_summary

logger = logging.getLogger(__name__)

# 列印頁面模板
TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "templates"
_print_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)

# A4 直式，四邊 10mm
PAGE_MARGIN = 10 * mm
CONTENT_WIDTH = A4[0] - PAGE_MARGIN * 2

LOGO_MAX_WIDTH = 35 * mm
LOGO_MAX_HEIGHT = 18 * mm

ITEM_HEADERS = ["序号", "品名", "规格", "单位", "数量", "单价", "金额", "备注"]
ITEM_COL_WIDTHS = [12 * mm, 38 * mm, 26 * mm, 14 * mm, 20 * mm, 22 * mm, 26 * mm, 32 * mm]


class PDFExportError(Exception):
    """PDF 產生失敗"""


def pdf_filename(note: DeliveryNote) -> str:
    return f"出库单_{note.noteNumber}.pdf"


def _ensure_font() -> str:
    if PDF_FONT not in pdfmetrics.getRegisteredFontNames():
        pdfmetrics.registerFont(UnicodeCIDFont(PDF_FONT))
    return PDF_FONT


def decode_logo(data_url: Optional[str]) -> Optional[bytes]:
    """解析 data URL 格式的 Logo，例如 data:image/png;base64,...."""
    if not data_url:
        return None
    header, sep, payload = data_url.partition(",")
    if not sep or not header.startswith("data:image/") or ";base64" not in header:
        raise ValueError("Logo 必須是 base64 編碼的圖片 data URL")
    return base64.b64decode(payload, validate=True)


def _logo_flowable(note: DeliveryNote):
    try:
        data = decode_logo(note.settings.logo)
        if not data:
            return ""
        width, height = ImageReader(io.BytesIO(data)).getSize()
        ratio = min(LOGO_MAX_WIDTH / width, LOGO_MAX_HEIGHT / height)
        return Image(io.BytesIO(data), width=width * ratio, height=height * ratio)
    except Exception as e:
        # Logo 無法解析時略過，不影響整份文件
        logger.warning(f"無法載入 Logo: {str(e)}")
        return ""


def _styles(font: str):
    return {
        "title": ParagraphStyle("NoteTitle", fontName=font, fontSize=22, leading=28,
                                alignment=TA_CENTER),
        "company": ParagraphStyle("NoteCompany", fontName=font, fontSize=9, leading=12,
                                  alignment=TA_CENTER, textColor=colors.HexColor("#666666")),
        "number": ParagraphStyle("NoteNumber", fontName=font, fontSize=9, leading=12,
                                 alignment=TA_RIGHT),
        "cell": ParagraphStyle("NoteCell", fontName=font, fontSize=9, leading=11,
                               alignment=TA_CENTER),
        "text": ParagraphStyle("NoteText", fontName=font, fontSize=10, leading=14),
        "summary": ParagraphStyle("NoteSummary", fontName=font, fontSize=9, leading=12,
                                  alignment=TA_RIGHT),
    }


def _p(text: str, style: ParagraphStyle) -> Paragraph:
    return Paragraph(escape(text or ""), style)


def _build_story(note: DeliveryNote, summary: NoteSummary, font: str) -> List:
    styles = _styles(font)
    title = note.settings.docTitle or DEFAULT_DOC_TITLE
    form = note.formData

    header = Table(
        [[
            _logo_flowable(note),
            [_p(title, styles["title"]), _p(note.settings.companyName, styles["company"])],
            _p(f"编号：{note.noteNumber}", styles["number"]),
        ]],
        colWidths=[45 * mm, CONTENT_WIDTH - 90 * mm, 45 * mm],
    )
    header.setStyle(TableStyle([
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("LINEBELOW", (0, 0), (-1, 0), 1.5, colors.HexColor("#333333")),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
    ]))

    info = Table(
        [
            [_p("客户名称：", styles["text"]), _p(form.customerName, styles["text"]),
             _p("送货日期：", styles["text"]), _p(form.deliveryDate, styles["text"])],
            [_p("送货地址：", styles["text"]), _p(form.deliveryAddress, styles["text"]), "", ""],
        ],
        colWidths=[22 * mm, 93 * mm, 22 * mm, CONTENT_WIDTH - 137 * mm],
    )
    info.setStyle(TableStyle([
        ("SPAN", (1, 1), (3, 1)),
        ("LINEBELOW", (1, 0), (1, 0), 0.5, colors.HexColor("#999999")),
        ("LINEBELOW", (3, 0), (3, 0), 0.5, colors.HexColor("#999999")),
        ("LINEBELOW", (1, 1), (3, 1), 0.5, colors.HexColor("#999999")),
    ]))

    rows = [[_p(h, styles["cell"]) for h in ITEM_HEADERS]]
    for index, item in enumerate(note.items):
        amount = summary.amounts[index] if index < len(summary.amounts) else "0.00"
        rows.append([
            _p(str(index + 1), styles["cell"]),
            _p(item.name, styles["cell"]),
            _p(item.spec, styles["cell"]),
            _p(item.unit, styles["cell"]),
            _p(item.quantity, styles["cell"]),
            _p(item.price, styles["cell"]),
            _p(amount, styles["cell"]),
            _p(item.remark, styles["cell"]),
        ])
    items = Table(rows, colWidths=ITEM_COL_WIDTHS, repeatRows=1)
    items.setStyle(TableStyle([
        ("GRID", (0, 0), (-1, -1), 0.75, colors.HexColor("#333333")),
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f5f5f5")),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ]))

    totals = Table(
        [
            [_p("合计金额：", styles["summary"]), _p(summary.subtotal, styles["summary"])],
            [_p(f"税率（{summary.taxRate}）税额：", styles["summary"]),
             _p(summary.taxAmount, styles["summary"])],
            [_p("价税合计：", styles["summary"]), _p(summary.grandTotal, styles["summary"])],
            [_p("大写金额：", styles["summary"]), _p(summary.amountInChinese, styles["summary"])],
        ],
        colWidths=[CONTENT_WIDTH - 70 * mm, 70 * mm],
    )
    totals.setStyle(TableStyle([
        ("BOX", (0, 0), (-1, -1), 0.5, colors.HexColor("#e8e8e8")),
        ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor("#fafafa")),
        ("LINEABOVE", (0, 2), (-1, 2), 0.5, colors.HexColor("#d9d9d9")),
    ]))

    signatures = Table(
        [
            [_p("制单人：", styles["text"]), _p(form.maker, styles["text"]),
             _p("拣货人：", styles["text"]), _p(form.picker, styles["text"]),
             _p("审核人：", styles["text"]), _p(form.reviewer, styles["text"])],
            [_p("收货人签字：", styles["text"]), "", "", "", "", ""],
        ],
        colWidths=[18 * mm, 40 * mm, 18 * mm, 40 * mm, 18 * mm, CONTENT_WIDTH - 134 * mm],
        rowHeights=[None, 12 * mm],
    )
    signatures.setStyle(TableStyle([
        ("SPAN", (1, 1), (5, 1)),
        ("LINEBELOW", (1, 0), (1, 0), 0.5, colors.HexColor("#333333")),
        ("LINEBELOW", (3, 0), (3, 0), 0.5, colors.HexColor("#333333")),
        ("LINEBELOW", (5, 0), (5, 0), 0.5, colors.HexColor("#333333")),
        ("LINEBELOW", (1, 1), (5, 1), 0.5, colors.HexColor("#333333")),
        ("VALIGN", (0, 0), (-1, -1), "BOTTOM"),
    ]))

    return [
        header,
        Spacer(1, 6 * mm),
        info,
        Spacer(1, 5 * mm),
        items,
        Spacer(1, 5 * mm),
        totals,
        Spacer(1, 10 * mm),
        signatures,
    ]


def render_pdf(note: DeliveryNote) -> bytes:
    """將出库单產生為 A4 PDF，返回 PDF 二進位內容"""
    try:
        font = _ensure_font()
        summary = build_summary(note.items, note.settings.taxRate)

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            leftMargin=PAGE_MARGIN,
            rightMargin=PAGE_MARGIN,
            topMargin=PAGE_MARGIN,
            bottomMargin=PAGE_MARGIN,
            title=note.settings.docTitle or DEFAULT_DOC_TITLE,
            author=note.settings.companyName,
        )
        doc.build(_build_story(note, summary, font))

        logger.info(f"PDF 產生完成: 編號={note.noteNumber}, 明細 {len(note.items)} 行")
        return buffer.getvalue()

    except Exception as e:
        logger.error(f"PDF導出失败: {str(e)}")
        raise PDFExportError(f"PDF导出失败：{str(e)}") from e


def render_print_html(note: DeliveryNote) -> str:
    """產生列印用的 HTML 頁面"""
    summary = build_summary(note.items, note.settings.taxRate)

    logo = None
    if note.settings.logo:
        try:
            decode_logo(note.settings.logo)
            logo = note.settings.logo
        except ValueError as err:
            logger.warning(f"無法載入 Logo: {str(err)}")

    rows = []
    for index, item in enumerate(note.items):
        amount = summary.amounts[index] if index < len(summary.amounts) else "0.00"
        rows.append([str(index + 1), item.name, item.spec, item.unit,
                     item.quantity, item.price, amount, item.remark])

    return _print_env.get_template("print_note.html").render(
        note=note,
        summary=summary,
        title=note.settings.docTitle or DEFAULT_DOC_TITLE,
        headers=ITEM_HEADERS,
        rows=rows,
        logo=logo,
    )
