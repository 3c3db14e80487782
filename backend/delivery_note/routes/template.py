from fastapi import APIRouter, HTTPException, Depends, UploadFile, File
from fastapi.responses import Response
import logging
from delivery_note.models.note import DeliveryNote
from delivery_note.routes.note import attachment_headers
from delivery_note.services.calculator import build_summary
from delivery_note.services.storage import Storage, get_storage
from delivery_note.services.template import (
    TemplateError,
    apply_template,
    collect_template,
    dump_template,
    parse_template,
    template_filename,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["template"])


@router.post("/export")
async def export_template(note: DeliveryNote) -> Response:
    """將目前表單下載為 JSON 模板"""
    template = collect_template(note)
    filename = template_filename()
    logger.info(f"導出模板: {filename}, 明細 {len(template.items)} 行")
    return Response(
        content=dump_template(template),
        media_type="application/json",
        headers=attachment_headers(filename),
    )


@router.post("/import")
async def import_template(
    file: UploadFile = File(...),
    storage: Storage = Depends(get_storage)
):
    """導入模板並套用到表單"""
    try:
        content = await file.read()
        template = parse_template(file.filename, content)
    except TemplateError as e:
        raise HTTPException(status_code=400, detail=str(e))

    note = apply_template(template, storage)
    return {
        "status": "success",
        "message": "模板导入成功",
        "note": note,
        "summary": build_summary(note.items, note.settings.taxRate),
    }
