import os
import tempfile

# 資料目錄與儲存檔案
DATA_DIR = os.getenv(
    "DELIVERY_NOTE_DATA_DIR",
    os.path.join(tempfile.gettempdir(), "delivery-note"),
)
STORAGE_PATH = os.getenv("DELIVERY_NOTE_STORAGE", os.path.join(DATA_DIR, "storage.json"))

# PDF 使用的中文字體（reportlab 內建 CID 字體）
PDF_FONT = os.getenv("DELIVERY_NOTE_PDF_FONT", "STSong-Light")

LOG_LEVEL = os.getenv("DELIVERY_NOTE_LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("DELIVERY_NOTE_CORS_ORIGINS", "*").split(",")
    if origin.strip()
]

# 預設值
DEFAULT_TAX_RATE = 13
DEFAULT_DOC_TITLE = "出库单"
CURRENCY_SYMBOL = "¥"
TEMPLATE_VERSION = "1.0"
