import json
import pytest
from pathlib import Path
from fastapi.testclient import TestClient
from delivery_note.main import app
from delivery_note.models.note import DeliveryNote, FormData, LineItem, Settings
from delivery_note.services.storage import Storage, get_storage

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def storage(tmp_path):
    """每個測試使用獨立的儲存檔案"""
    return Storage(str(tmp_path / "storage.json"))


@pytest.fixture
def test_client(storage):
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def sample_template_bytes():
    return (FIXTURES_DIR / "sample_template.json").read_bytes()


@pytest.fixture
def sample_template_data(sample_template_bytes):
    return json.loads(sample_template_bytes.decode("utf-8"))


@pytest.fixture
def sample_note():
    return DeliveryNote(
        noteNumber="20260129205500001",
        settings=Settings(companyName="华东物流有限公司", taxRate=13, docTitle="出库单"),
        formData=FormData(
            customerName="上海示例贸易公司",
            deliveryAddress="上海市浦东新区世纪大道100号",
            deliveryDate="2026-01-29",
            maker="张三",
            picker="李四",
            reviewer="王五",
        ),
        items=[
            LineItem(seq=1, name="不锈钢螺丝", spec="M6x20", unit="盒", quantity="2", price="50"),
            LineItem(seq=2, name="包装纸箱", spec="40x30x20", unit="个", quantity="10",
                     price="3.5", remark="加急"),
        ],
    )


@pytest.fixture
def png_logo_data_url():
    """建立測試用的 PNG Logo"""
    import base64
    import io
    from PIL import Image

    buffer = io.BytesIO()
    Image.new("RGB", (40, 20), (24, 144, 255)).save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")
