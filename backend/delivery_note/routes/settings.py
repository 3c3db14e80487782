from fastapi import APIRouter, HTTPException, Depends, UploadFile, File
import base64
import logging
from delivery_note.models.note import Settings
from delivery_note.services.storage import Storage, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["settings"])


@router.get("")
async def get_settings(storage: Storage = Depends(get_storage)) -> Settings:
    """讀取設定"""
    return storage.load_settings()


@router.put("")
async def save_settings(settings: Settings, storage: Storage = Depends(get_storage)):
    """保存設定"""
    if not storage.save_settings(settings):
        raise HTTPException(status_code=500, detail="保存失败")
    return {"status": "success", "message": "设置已保存", "settings": settings}


@router.delete("")
async def clear_settings(storage: Storage = Depends(get_storage)):
    """清除所有已保存的資料"""
    if not storage.clear_all():
        raise HTTPException(status_code=500, detail="清除数据失败")
    return {"status": "success"}


@router.post("/logo")
async def upload_logo(file: UploadFile = File(...)):
    """上傳 Logo，返回 data URL 供表單預覽與保存"""
    content_type = file.content_type or ""
    if not content_type.startswith("image/"):
        logger.warning(f"拒絕非圖片檔案: {file.filename} ({content_type})")
        raise HTTPException(status_code=400, detail="请选择图片文件")

    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="请选择图片文件")

    encoded = base64.b64encode(data).decode("ascii")
    return {"logo": f"data:{content_type};base64,{encoded}"}


@router.get("/export-count")
async def get_export_count(storage: Storage = Depends(get_storage)):
    """今日導出次數"""
    return {"count": storage.get_today_export_count()}
