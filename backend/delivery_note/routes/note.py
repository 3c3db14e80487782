from fastapi import APIRouter, HTTPException, Depends, FastAPI
from fastapi.responses import HTMLResponse, Response
from contextlib import asynccontextmanager
from datetime import date
from typing import Dict
from urllib.parse import quote
import logging
import os
from delivery_note.config import DATA_DIR
from delivery_note.models.note import CalculateRequest, DeliveryNote, FormData, LineItem
from delivery_note.services.calculator import NoteSummary, build_summary
from delivery_note.services.pdf_export import (
    PDFExportError,
    pdf_filename,
    render_pdf,
    render_print_html,
)
from delivery_note.services.storage import Storage, get_storage

# 設定日誌
logger = logging.getLogger(__name__)

router = APIRouter(tags=["note"])


def attachment_headers(filename: str) -> Dict[str, str]:
    """下載檔名含中文時使用 RFC 5987 格式"""
    fallback = filename.encode("ascii", "ignore").decode("ascii") or "download"
    return {
        "Content-Disposition": f"attachment; filename=\"{fallback}\"; filename*=utf-8''{quote(filename)}"
    }


@router.get("/new")
async def new_note(storage: Storage = Depends(get_storage)) -> DeliveryNote:
    """建立新的出库单：載入設定、今日日期、新編號與一行空白明細"""
    return DeliveryNote(
        noteNumber=storage.generate_note_number(),
        settings=storage.load_settings(),
        formData=FormData(deliveryDate=date.today().isoformat()),
        items=[LineItem(seq=1)],
    )


@router.get("/number")
async def get_note_number(storage: Storage = Depends(get_storage)):
    """生成出库单編號"""
    return {"noteNumber": storage.generate_note_number()}


@router.post("/calculate")
async def calculate(payload: CalculateRequest) -> NoteSummary:
    """計算明細金額、合計、税额與大寫金額"""
    return build_summary(payload.items, payload.taxRate)


@router.post("/export/pdf")
async def export_pdf(note: DeliveryNote, storage: Storage = Depends(get_storage)) -> Response:
    """導出 A4 PDF"""
    if not note.noteNumber:
        note.noteNumber = storage.generate_note_number()

    # 增加導出計數
    storage.increment_export_count()

    try:
        content = render_pdf(note)
    except PDFExportError as e:
        raise HTTPException(status_code=500, detail=str(e))

    logger.info(f"已導出 PDF: {pdf_filename(note)}")
    return Response(
        content=content,
        media_type="application/pdf",
        headers=attachment_headers(pdf_filename(note)),
    )


@router.post("/print", response_class=HTMLResponse)
async def print_note(note: DeliveryNote, storage: Storage = Depends(get_storage)):
    """產生列印頁面"""
    if not note.noteNumber:
        note.noteNumber = storage.generate_note_number()

    storage.increment_export_count()
    return HTMLResponse(content=render_print_html(note))


# 啟動時確認資料目錄存在
@asynccontextmanager
async def lifespan(app: FastAPI):
    os.makedirs(DATA_DIR, exist_ok=True)
    logger.info(f"資料目錄: {DATA_DIR}")
    yield
