from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from delivery_note.config import CORS_ORIGINS, DEFAULT_DOC_TITLE, LOG_LEVEL, TEMPLATE_VERSION
from delivery_note.routes import note, settings, template
from delivery_note.services.storage import Storage, get_storage
import logging

# 設定日誌
logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="出库单生成器",
    description="出库单金额汇总、大写金额与 A4 PDF／列印导出",
    lifespan=note.lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 出库单、設定、模板三組 API
app.include_router(note.router, prefix="/api/note", tags=["note"])
app.include_router(settings.router, prefix="/api/settings", tags=["settings"])
app.include_router(template.router, prefix="/api/template", tags=["template"])


@app.get("/")
async def root():
    return {
        "service": DEFAULT_DOC_TITLE,
        "templateVersion": TEMPLATE_VERSION,
        "endpoints": ["/api/note", "/api/settings", "/api/template"],
    }


@app.get("/health")
async def health_check(storage: Storage = Depends(get_storage)):
    """回報儲存檔案是否可讀取，以及今日導出次數"""
    if not storage.is_readable():
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "storage": storage.path}
        )
    return {
        "status": "ok",
        "storage": storage.path,
        "todayExportCount": storage.get_today_export_count(),
    }


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"出库单服务處理 {request.method} {request.url.path} 失敗: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={
            "status": "error",
            "message": "出库单服务内部错误",
            "path": request.url.path,
            "detail": str(exc)
        }
    )
