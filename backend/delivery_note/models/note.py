from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime, timezone
from delivery_note.config import DEFAULT_DOC_TITLE, DEFAULT_TAX_RATE, TEMPLATE_VERSION
from delivery_note.services.calculator import parse_tax_rate


def _as_text(v) -> str:
    if v is None:
        return ""
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """UTC 時間字串，毫秒精度並以 Z 結尾"""
    now = now or datetime.now(timezone.utc)
    # 未帶時區的時間視為 UTC
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class LineItem(BaseModel):
    seq: int = 0
    name: str = ""
    spec: str = ""
    unit: str = ""
    quantity: str = ""
    price: str = ""
    remark: str = ""

    @field_validator('seq', mode='before')
    def validate_seq(cls, v):
        try:
            return int(v)
        except (TypeError, ValueError):
            return 0

    @field_validator('name', 'spec', 'unit', 'quantity', 'price', 'remark', mode='before')
    def coerce_text(cls, v):
        # 表單欄位皆為文字，JSON 中的數字或 null 統一轉為字串
        return _as_text(v)


class Settings(BaseModel):
    companyName: str = ""
    taxRate: float = DEFAULT_TAX_RATE
    docTitle: str = DEFAULT_DOC_TITLE
    logo: Optional[str] = None

    @field_validator('taxRate', mode='before')
    def validate_tax_rate(cls, v):
        return float(parse_tax_rate(v))

    @field_validator('companyName', mode='before')
    def validate_company_name(cls, v):
        return _as_text(v)

    @field_validator('docTitle', mode='before')
    def validate_doc_title(cls, v):
        return _as_text(v) or DEFAULT_DOC_TITLE

    @field_validator('logo', mode='before')
    def validate_logo(cls, v):
        return v or None


class FormData(BaseModel):
    customerName: str = ""
    deliveryAddress: str = ""
    deliveryDate: str = ""
    maker: str = ""
    picker: str = ""
    reviewer: str = ""

    @field_validator('*', mode='before')
    def coerce_text(cls, v):
        return _as_text(v)


class DeliveryNote(BaseModel):
    """整張出库单的表單狀態"""
    noteNumber: str = ""
    settings: Settings = Field(default_factory=Settings)
    formData: FormData = Field(default_factory=FormData)
    items: List[LineItem] = Field(default_factory=list)


class TemplateSettings(BaseModel):
    companyName: str = ""
    taxRate: str = str(DEFAULT_TAX_RATE)
    docTitle: str = DEFAULT_DOC_TITLE

    @field_validator('*', mode='before')
    def coerce_text(cls, v):
        return _as_text(v)


class Template(BaseModel):
    """模板檔案格式"""
    version: str = TEMPLATE_VERSION
    exportTime: str = Field(default_factory=lambda: utc_timestamp())
    settings: TemplateSettings
    formData: FormData
    items: List[LineItem]


class CalculateRequest(BaseModel):
    items: List[LineItem] = []
    taxRate: Optional[str] = None

    @field_validator('taxRate', mode='before')
    def coerce_tax_rate(cls, v):
        return None if v is None else _as_text(v)
