import json
import pytest
from datetime import date, datetime, timedelta, timezone
from delivery_note.models.note import LineItem, Settings, Template, utc_timestamp
from delivery_note.services.template import (
    TemplateError,
    apply_template,
    collect_template,
    dump_template,
    parse_template,
    template_filename,
    validate_template,
)


@pytest.mark.unit
def test_collect_template_renumbers_items(sample_note):
    sample_note.items[0].seq = 7
    sample_note.settings.logo = "data:image/png;base64,AAAA"

    template = collect_template(sample_note, now=datetime(2026, 1, 29, 12, 0, 0, tzinfo=timezone.utc))

    assert template.version == "1.0"
    assert template.exportTime == "2026-01-29T12:00:00.000Z"
    assert [item.seq for item in template.items] == [1, 2]
    assert template.settings.taxRate == "13"
    assert template.formData.customerName == "上海示例贸易公司"
    # 模板不包含 Logo
    assert "logo" not in template.settings.model_dump()


@pytest.mark.unit
def test_export_time_is_utc():
    # 東八區 20:00 為 UTC 12:00
    local = datetime(2026, 1, 29, 20, 0, 0, tzinfo=timezone(timedelta(hours=8)))

    assert utc_timestamp(local) == "2026-01-29T12:00:00.000Z"
    assert utc_timestamp(datetime(2026, 1, 29, 12, 0, 0, 123456)) == "2026-01-29T12:00:00.123Z"
    assert utc_timestamp().endswith("Z")


@pytest.mark.unit
def test_template_default_export_time_is_utc(sample_note):
    template = Template(settings={}, formData={}, items=[])

    exported = datetime.fromisoformat(template.exportTime.replace("Z", "+00:00"))
    assert template.exportTime.endswith("Z")
    assert exported.utcoffset() == timedelta(0)
    assert collect_template(sample_note).exportTime.endswith("Z")


@pytest.mark.unit
def test_dump_template_keeps_chinese(sample_note):
    content = dump_template(collect_template(sample_note))

    assert "不锈钢螺丝".encode("utf-8") in content
    data = json.loads(content)
    assert set(data) == {"version", "exportTime", "settings", "formData", "items"}
    assert data["items"][1] == {
        "seq": 2, "name": "包装纸箱", "spec": "40x30x20", "unit": "个",
        "quantity": "10", "price": "3.5", "remark": "加急",
    }


@pytest.mark.unit
def test_template_filename():
    assert template_filename(date(2026, 1, 9)) == "出库单模板_2026-1-9.json"


@pytest.mark.unit
@pytest.mark.parametrize("data, expected", [
    ({"settings": {}, "formData": {}, "items": []}, True),
    ({"settings": {}, "formData": {}}, False),
    ({"settings": {}, "formData": {}, "items": {}}, False),
    ({"settings": None, "formData": {}, "items": []}, False),
    ([], False),
    ("template", False),
    (None, False),
])
def test_validate_template(data, expected):
    assert validate_template(data) is expected


@pytest.mark.unit
def test_parse_template(sample_template_bytes):
    template = parse_template("出库单模板.json", sample_template_bytes)

    assert template.settings.companyName == "华东物流有限公司"
    assert len(template.items) == 2
    assert template.items[1].price == "3.5"


@pytest.mark.unit
def test_parse_template_coerces_numbers():
    content = json.dumps({
        "settings": {"taxRate": 6},
        "formData": {"maker": None},
        "items": [{"seq": "1", "quantity": 2, "price": 12.5}],
    }).encode("utf-8")

    template = parse_template("t.JSON", content)

    assert template.settings.taxRate == "6"
    assert template.formData.maker == ""
    assert template.items[0].quantity == "2"
    assert template.items[0].price == "12.5"


@pytest.mark.unit
@pytest.mark.parametrize("filename, content, message", [
    (None, b"{}", "请选择文件"),
    ("template.txt", b"{}", "请选择 JSON 格式的模板文件"),
    ("template.json", b"{broken", "解析模板文件失败："),
    ("template.json", b"\xff\xfe\x00", "解析模板文件失败："),
    ("template.json", b'{"settings": {}, "formData": {}}', "模板文件格式不正确"),
    ("template.json", b'{"settings": {}, "formData": {}, "items": [1, 2]}', "模板文件格式不正确"),
])
def test_parse_template_errors(filename, content, message):
    with pytest.raises(TemplateError) as exc_info:
        parse_template(filename, content)
    assert str(exc_info.value).startswith(message)


@pytest.mark.unit
def test_apply_template_saves_settings(storage, sample_template_bytes):
    storage.save_settings(Settings(companyName="旧公司", logo="data:image/png;base64,AAAA"))
    template = parse_template("t.json", sample_template_bytes)

    note = apply_template(template, storage)

    saved = storage.load_settings()
    assert saved.companyName == "华东物流有限公司"
    assert saved.taxRate == 13
    assert saved.logo is None
    assert note.settings == saved
    assert note.formData.reviewer == "王五"
    assert [item.name for item in note.items] == ["不锈钢螺丝", "包装纸箱"]
    assert len(note.noteNumber) == 17


@pytest.mark.unit
def test_apply_template_defaults_and_blank_row(storage):
    content = json.dumps({
        "settings": {"companyName": "", "taxRate": "", "docTitle": ""},
        "formData": {},
        "items": [],
    }).encode("utf-8")

    note = apply_template(parse_template("t.json", content), storage)

    assert note.settings.taxRate == 13
    assert note.settings.docTitle == "出库单"
    assert note.items == [LineItem(seq=1)]
