import json
import logging
from datetime import date, datetime
from typing import Any, Optional

from pydantic import ValidationError

from delivery_note.config import DEFAULT_DOC_TITLE, DEFAULT_TAX_RATE, TEMPLATE_VERSION
from delivery_note.models.note import (
    DeliveryNote,
    LineItem,
    Settings,
    Template,
    TemplateSettings,
    utc_timestamp,
)
from delivery_note.services.storage import Storage

logger = logging.getLogger(__name__)


class TemplateError(ValueError):
    """模板檔案無法導入"""


def collect_template(note: DeliveryNote, now: Optional[datetime] = None) -> Template:
    """將目前的表單資料整理為模板"""
    items = [
        item.model_copy(update={"seq": index + 1})
        for index, item in enumerate(note.items)
    ]
    return Template(
        version=TEMPLATE_VERSION,
        exportTime=utc_timestamp(now),
        settings=TemplateSettings(
            companyName=note.settings.companyName,
            taxRate=note.settings.taxRate,
            docTitle=note.settings.docTitle,
        ),
        formData=note.formData,
        items=items,
    )


def template_filename(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"出库单模板_{today.year}-{today.month}-{today.day}.json"


def dump_template(template: Template) -> bytes:
    return json.dumps(template.model_dump(), ensure_ascii=False, indent=2).encode("utf-8")


def validate_template(data: Any) -> bool:
    """驗證模板資料的基本結構"""
    if not data or not isinstance(data, dict):
        return False

    # 檢查必需的欄位
    if not isinstance(data.get("settings"), dict) or not isinstance(data.get("formData"), dict):
        return False
    if not isinstance(data.get("items"), list):
        return False

    return True


def parse_template(filename: Optional[str], content: Optional[bytes]) -> Template:
    """解析上傳的模板檔案"""
    if not filename or content is None:
        raise TemplateError("请选择文件")

    if not filename.lower().endswith(".json"):
        raise TemplateError("请选择 JSON 格式的模板文件")

    try:
        data = json.loads(content.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning(f"模板檔案解析失敗: {filename}, {str(e)}")
        raise TemplateError(f"解析模板文件失败：{str(e)}")

    if not validate_template(data):
        raise TemplateError("模板文件格式不正确")

    try:
        return Template.model_validate(data)
    except ValidationError as e:
        logger.warning(f"模板欄位驗證失敗: {filename}, {str(e)}")
        raise TemplateError("模板文件格式不正确")


def apply_template(template: Template, storage: Storage) -> DeliveryNote:
    """
    套用模板：保存模板中的設定並返回對應的表單狀態

    模板不含 Logo，套用後 Logo 會被清除。
    """
    settings = Settings(
        companyName=template.settings.companyName or "",
        taxRate=template.settings.taxRate or DEFAULT_TAX_RATE,
        docTitle=template.settings.docTitle or DEFAULT_DOC_TITLE,
        logo=None,
    )
    if not storage.save_settings(settings):
        logger.warning("套用模板時保存設定失敗")

    items = [
        item.model_copy(update={"seq": index + 1})
        for index, item in enumerate(template.items)
    ]
    # 沒有明細時保留一行空白
    if not items:
        items = [LineItem(seq=1)]

    logger.info(f"已套用模板，共 {len(items)} 行明細")
    return DeliveryNote(
        noteNumber=storage.generate_note_number(),
        settings=settings,
        formData=template.formData,
        items=items,
    )
