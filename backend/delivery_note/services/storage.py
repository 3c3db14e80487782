import json
import logging
import os
import threading
from datetime import date, datetime
from typing import Dict, Optional

from delivery_note.config import STORAGE_PATH
from delivery_note.models.note import Settings

logger = logging.getLogger(__name__)


class Storage:
    """
    以 JSON 檔案保存設定與每日導出計數

    檔案內容為字串鍵值對，鍵名固定：
    - delivery_note_settings：設定（JSON 字串）
    - delivery_note_export_count：今日導出次數
    - delivery_note_export_date：計數所屬日期
    """

    KEYS = {
        "SETTINGS": "delivery_note_settings",
        "EXPORT_COUNT": "delivery_note_export_count",
        "EXPORT_DATE": "delivery_note_export_date",
    }

    def __init__(self, path: str = STORAGE_PATH):
        self.path = path
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"儲存檔案格式錯誤: {self.path}")
        return data

    def _write(self, data: Dict[str, str]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read().get(key)

    def set_items(self, items: Dict[str, str]) -> None:
        with self._lock:
            data = self._read()
            data.update(items)
            self._write(data)

    def remove_items(self, *keys: str) -> None:
        with self._lock:
            data = self._read()
            for key in keys:
                data.pop(key, None)
            self._write(data)

    def save_settings(self, settings: Settings) -> bool:
        """保存設定"""
        try:
            self.set_items({self.KEYS["SETTINGS"]: settings.model_dump_json()})
            logger.info(f"設定已保存: {self.path}")
            return True
        except Exception as e:
            logger.error(f"保存設定失敗: {str(e)}")
            return False

    def load_settings(self) -> Settings:
        """讀取設定，讀取失敗時返回預設設定"""
        try:
            data = self.get_item(self.KEYS["SETTINGS"])
            if data:
                return Settings.model_validate_json(data)
        except Exception as e:
            logger.error(f"讀取設定失敗: {str(e)}")
        return self.get_default_settings()

    def is_readable(self) -> bool:
        """儲存檔案不存在或內容可解析時返回 True"""
        try:
            with self._lock:
                self._read()
            return True
        except Exception as e:
            logger.error(f"儲存檔案無法讀取: {str(e)}")
            return False

    @staticmethod
    def get_default_settings() -> Settings:
        return Settings()

    def get_today_export_count(self, today: Optional[date] = None) -> int:
        """取得今日導出次數，日期變更時重置計數"""
        today_str = (today or date.today()).isoformat()
        try:
            with self._lock:
                data = self._read()
                if data.get(self.KEYS["EXPORT_DATE"]) == today_str:
                    return int(data.get(self.KEYS["EXPORT_COUNT"]) or "0")

                data[self.KEYS["EXPORT_DATE"]] = today_str
                data[self.KEYS["EXPORT_COUNT"]] = "0"
                self._write(data)
                return 0
        except Exception as e:
            logger.error(f"讀取導出計數失敗: {str(e)}")
            return 0

    def increment_export_count(self, today: Optional[date] = None) -> int:
        """增加導出計數並返回新的計數"""
        today_str = (today or date.today()).isoformat()
        try:
            with self._lock:
                data = self._read()
                count = 0
                if data.get(self.KEYS["EXPORT_DATE"]) == today_str:
                    count = int(data.get(self.KEYS["EXPORT_COUNT"]) or "0")

                count += 1
                data[self.KEYS["EXPORT_DATE"]] = today_str
                data[self.KEYS["EXPORT_COUNT"]] = str(count)
                self._write(data)
            logger.info(f"今日導出次數: {count}")
            return count
        except Exception as e:
            logger.error(f"增加導出計數失敗: {str(e)}")
            return 1

    def generate_note_number(self, now: Optional[datetime] = None) -> str:
        """
        生成出库单編號

        格式：年月日時分秒 + 3 位序號，例如 202601292055001
        """
        now = now or datetime.now()
        count = self.get_today_export_count(now.date()) + 1
        return f"{now.strftime('%Y%m%d%H%M%S')}{count:03d}"

    def clear_all(self) -> bool:
        """清除所有資料"""
        try:
            self.remove_items(*self.KEYS.values())
            return True
        except Exception as e:
            logger.error(f"清除資料失敗: {str(e)}")
            return False


_storage: Optional[Storage] = None


def get_storage() -> Storage:
    """FastAPI 依賴：取得共用的 Storage 實例"""
    global _storage
    if _storage is None:
        _storage = Storage()
    return _storage
