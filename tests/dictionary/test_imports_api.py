"""字典批量导入、撤销/重做与导入历史接口的集成测试。"""

import io

from fastapi.testclient import TestClient
from openpyxl import Workbook, load_workbook
from sqlalchemy.exc import OperationalError

from app.packages.dictionary.core.config import get_settings
from app.packages.dictionary.core.constants import IMPORT_COLUMNS
from app.packages.dictionary.crud.dictionary import dictionary_item_crud

IMPORTS_URL = "/api/v1/dictionary-imports"
HEADERS = {"X-Operator-Id": "42"}
SCENARIO_ROWS = [
    {"code": "A", "name": "Alpha"},
    {"code": "B", "name": "Beta"},
    {"code": "C", "name": "Gamma"},
]


def _import(client: TestClient, dictionary_code: str, rows, **options):
    body = {"dictionary_code": dictionary_code, "rows": rows, **options}
    return client.post(IMPORTS_URL, json=body, headers=HEADERS)


def _items(client: TestClient, dictionary_code: str) -> dict:
    response = client.get(f"/api/v1/dictionaries/{dictionary_code}/items", params={"page_size": 100})
    assert response.status_code == 200
    return {item["code"]: item for item in response.json()["data"]["items"]}


def _seed_old_a(client: TestClient, dictionary_code: str) -> int:
    response = _import(client, dictionary_code, [{"code": "A", "name": "Old-A"}])
    assert response.status_code == 200
    return response.json()["data"]["id"]


def test_import_undo_redo_scenarios(client: TestClient, dictionary_code: str):
    """覆盖导入、撤销、重做与新导入清空重做的完整流程。"""
    _seed_old_a(client, dictionary_code)

    # 场景 1：upsert 更新 A，新增 B、C
    response = _import(client, dictionary_code, SCENARIO_ROWS, import_mode="upsert")
    assert response.status_code == 200
    payload = response.json()
    assert payload["code"] == 200
    batch = payload["data"]
    assert batch["status"] == "completed"
    assert batch["successful_records"] == 3
    assert batch["failed_records"] == 0
    assert batch["performed_by"] == 42
    assert batch["capabilities"] == {"batch_id": batch["id"], "can_undo": True, "can_redo": False}
    items = _items(client, dictionary_code)
    assert {code: item["name"] for code, item in items.items()} == {"A": "Alpha", "B": "Beta", "C": "Gamma"}
    created_ids = {code: items[code]["id"] for code in ("B", "C")}

    # 场景 4：撤销
    undo_resp = client.post(f"{IMPORTS_URL}/{batch['id']}/undo", headers=HEADERS)
    assert undo_resp.status_code == 200
    undo_data = undo_resp.json()["data"]
    assert undo_data["completed"] is True
    assert undo_data["batch"]["status"] == "rolled_back"
    assert undo_data["batch"]["rolled_back_by"] == 42
    assert undo_data["capabilities"]["can_redo"] is True
    items = _items(client, dictionary_code)
    assert list(items) == ["A"]
    assert items["A"]["name"] == "Old-A"

    # 场景 5：重做
    redo_resp = client.post(f"{IMPORTS_URL}/{batch['id']}/redo", headers=HEADERS)
    assert redo_resp.status_code == 200
    redo_data = redo_resp.json()["data"]
    assert redo_data["capabilities"] == {"batch_id": batch["id"], "can_undo": True, "can_redo": False}
    items = _items(client, dictionary_code)
    assert items["A"]["name"] == "Alpha"
    assert {code: items[code]["id"] for code in ("B", "C")} == created_ids

    # 场景 6：撤销后执行新的导入，原批次不可再重做
    assert client.post(f"{IMPORTS_URL}/{batch['id']}/undo", headers=HEADERS).status_code == 200
    assert _import(client, dictionary_code, [{"code": "D", "name": "Delta"}]).status_code == 200
    caps = client.get(f"{IMPORTS_URL}/{batch['id']}/capabilities").json()["data"]
    assert caps["can_redo"] is False
    stale_redo = client.post(f"{IMPORTS_URL}/{batch['id']}/redo", headers=HEADERS)
    assert stale_redo.status_code == 409
    assert stale_redo.json()["code"] == 409


def test_strict_create_failure_reports_row_errors(client: TestClient, dictionary_code: str):
    _seed_old_a(client, dictionary_code)

    response = _import(client, dictionary_code, SCENARIO_ROWS, import_mode="create")

    assert response.status_code == 200
    payload = response.json()
    assert payload["msg"] == "导入失败，未写入任何数据"
    batch = payload["data"]
    assert batch["status"] == "failed"
    assert batch["successful_records"] == 0
    assert batch["failed_records"] == 3
    assert batch["error_log"] == ["Row 1: CodeAlreadyExists(A)"]
    assert batch["capabilities"]["can_undo"] is False
    assert list(_items(client, dictionary_code)) == ["A"]

    errors = client.get(f"{IMPORTS_URL}/{batch['id']}/errors").json()["data"]
    assert errors["total"] == 1
    assert errors["items"][0] == {
        "row": 1,
        "error_code": "CodeAlreadyExists",
        "detail": "A",
        "message": "Row 1: CodeAlreadyExists(A)",
    }


def test_skip_errors_import_completes_with_failures(client: TestClient, dictionary_code: str):
    _seed_old_a(client, dictionary_code)

    response = _import(client, dictionary_code, SCENARIO_ROWS, import_mode="create", skip_errors=True)

    batch = response.json()["data"]
    assert batch["status"] == "completed"
    assert batch["successful_records"] == 2
    assert batch["failed_records"] == 1


def test_undo_conflict_returns_report_and_retry_succeeds(client: TestClient, dictionary_code: str):
    batch_id = _import(client, dictionary_code, SCENARIO_ROWS).json()["data"]["id"]
    item_b = _items(client, dictionary_code)["B"]
    edit = client.put(
        f"/api/v1/dictionaries/items/{item_b['id']}",
        json={"name": "Beta (manual)", "version": item_b["version"]},
        headers=HEADERS,
    )
    assert edit.status_code == 200

    conflict = client.post(f"{IMPORTS_URL}/{batch_id}/undo", headers=HEADERS)

    assert conflict.status_code == 409
    report = conflict.json()["data"]
    assert [item["item_code"] for item in report["conflicts"]] == ["B"]
    assert report["completed"] is False
    assert report["capabilities"]["can_undo"] is True
    assert set(_items(client, dictionary_code)) == {"B"}

    item_b = _items(client, dictionary_code)["B"]
    client.put(
        f"/api/v1/dictionaries/items/{item_b['id']}",
        json={"name": "Beta", "version": item_b["version"]},
        headers=HEADERS,
    )
    retry = client.post(f"{IMPORTS_URL}/{batch_id}/undo", headers=HEADERS)
    assert retry.status_code == 200
    assert retry.json()["data"]["already_applied"] == 2
    assert _items(client, dictionary_code) == {}


def test_only_stack_top_can_be_undone(client: TestClient, dictionary_code: str):
    first = _import(client, dictionary_code, [{"code": "A", "name": "Alpha"}]).json()["data"]["id"]
    second = _import(client, dictionary_code, [{"code": "B", "name": "Beta"}]).json()["data"]["id"]

    response = client.post(f"{IMPORTS_URL}/{first}/undo", headers=HEADERS)
    assert response.status_code == 409
    assert response.json()["data"]["undo_top_id"] == second

    assert client.post(f"{IMPORTS_URL}/{second}/undo", headers=HEADERS).status_code == 200
    stack = client.get(f"{IMPORTS_URL}/stacks/{dictionary_code}").json()["data"]
    assert stack == {"dictionary_code": dictionary_code, "undo_top_id": first, "redo_top_id": second}


def test_unknown_batch_returns_404(client: TestClient):
    assert client.post(f"{IMPORTS_URL}/987654321/undo", headers=HEADERS).status_code == 404
    assert client.get(f"{IMPORTS_URL}/987654321").status_code == 404


def test_storage_fault_marks_batch_failed(monkeypatch, client: TestClient, dictionary_code: str):
    def _disk_failure(*args, **kwargs):
        raise OperationalError("INSERT INTO dictionary_items", {}, Exception("disk I/O error"))

    monkeypatch.setattr(dictionary_item_crud, "insert", _disk_failure)

    response = _import(client, dictionary_code, SCENARIO_ROWS)

    assert response.status_code == 500
    batch_id = response.json()["data"]["batch_id"]
    detail = client.get(f"{IMPORTS_URL}/{batch_id}").json()["data"]
    assert detail["status"] == "failed"
    assert detail["successful_records"] == 0
    assert detail["failed_records"] == 3
    assert detail["error_log"][-1] == "Fatal: disk I/O error"
    assert detail["journal"] == []


def test_timeout_never_leaves_batch_in_progress(monkeypatch, client: TestClient, dictionary_code: str):
    monkeypatch.setattr(get_settings(), "import_timeout_seconds", 0)

    response = _import(client, dictionary_code, SCENARIO_ROWS)

    assert response.status_code == 500
    history = client.get(IMPORTS_URL, params={"dictionary_code": dictionary_code}).json()["data"]
    assert [item["status"] for item in history["items"]] == ["failed"]


def test_oversized_import_is_rejected(monkeypatch, client: TestClient, dictionary_code: str):
    monkeypatch.setattr(get_settings(), "import_max_rows", 2)

    response = _import(client, dictionary_code, SCENARIO_ROWS)

    assert response.status_code == 400
    history = client.get(IMPORTS_URL, params={"dictionary_code": dictionary_code}).json()["data"]
    assert history["total"] == 0


def test_locked_dictionary_returns_423(monkeypatch, client: TestClient, dictionary_code: str, lock_backend):
    monkeypatch.setattr(get_settings(), "lock_wait_seconds", 0.05)
    handle = lock_backend.acquire(dictionary_code, wait_seconds=0, timeout_seconds=60)
    try:
        response = _import(client, dictionary_code, SCENARIO_ROWS)
    finally:
        lock_backend.release(handle)

    assert response.status_code == 423
    assert response.json()["code"] == 423


def test_invalid_operator_header_is_rejected(client: TestClient, dictionary_code: str):
    response = client.post(
        IMPORTS_URL,
        json={"dictionary_code": dictionary_code, "rows": SCENARIO_ROWS},
        headers={"X-Operator-Id": "admin"},
    )

    assert response.status_code == 400


def test_history_detail_and_delete(client: TestClient, dictionary_code: str):
    first = _import(client, dictionary_code, [{"code": "A", "name": "Alpha"}]).json()["data"]["id"]
    failed = _import(client, dictionary_code, [{"code": "A", "name": "Alpha"}], import_mode="create").json()["data"]["id"]
    latest = _import(client, dictionary_code, [{"code": "B", "name": "Beta"}]).json()["data"]["id"]

    history = client.get(IMPORTS_URL, params={"dictionary_code": dictionary_code}).json()["data"]
    assert [item["id"] for item in history["items"]] == [latest, failed, first]
    assert [item["can_undo"] for item in history["items"]] == [True, False, False]
    assert history["stack"]["undo_top_id"] == latest

    completed_only = client.get(
        IMPORTS_URL,
        params={"dictionary_code": dictionary_code, "statuses": ["completed"]},
    ).json()["data"]
    assert completed_only["total"] == 2

    detail = client.get(f"{IMPORTS_URL}/{latest}").json()["data"]
    assert detail["journal"][0]["operation"] == "created"
    assert detail["journal"][0]["before_state"] is None
    assert detail["journal"][0]["after_state"]["code"] == "B"

    pinned = client.delete(f"{IMPORTS_URL}/{latest}", headers=HEADERS)
    assert pinned.status_code == 409

    deleted = client.delete(f"{IMPORTS_URL}/{failed}", headers=HEADERS)
    assert deleted.status_code == 200
    assert deleted.json()["data"] == {"id": failed}
    assert client.get(f"{IMPORTS_URL}/{failed}").status_code == 404


def test_validate_preview_does_not_write(client: TestClient, dictionary_code: str):
    _seed_old_a(client, dictionary_code)

    response = client.post(
        f"{IMPORTS_URL}/validate",
        json={
            "dictionary_code": dictionary_code,
            "import_mode": "create",
            "rows": [
                {"code": "A", "name": "Alpha"},
                {"code": "B", "name": "Beta", "name_en": "Beta", "name_ru": "Бета", "name_uz": "Beta"},
                {"code": "B", "name": "Again"},
            ],
        },
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["total"] == 3
    assert data["valid"] == 1
    assert data["invalid"] == 2
    rows = data["rows"]
    assert rows[0]["error"] == "CodeAlreadyExists(A)"
    assert rows[1]["action"] == "create"
    assert rows[1]["warnings"] == []
    assert rows[2]["error"] == "DuplicateCode(B)"
    assert list(_items(client, dictionary_code)) == ["A"]


def test_template_and_xlsx_upload(client: TestClient, dictionary_code: str):
    template = client.get(f"{IMPORTS_URL}/template")
    assert template.status_code == 200
    sheet = load_workbook(io.BytesIO(template.content)).active
    header = [cell.value for cell in next(sheet.iter_rows(max_row=1))]
    assert header == list(IMPORT_COLUMNS)

    workbook = Workbook()
    upload_sheet = workbook.active
    upload_sheet.append(["code", "name", "name_en", "sort_order", "is_active"])
    upload_sheet.append(["KG", "Kilogram", "Kilogram", 1, True])
    upload_sheet.append([None, None, None, None, None])
    upload_sheet.append([1001, "Gram", None, 2, False])
    buffer = io.BytesIO()
    workbook.save(buffer)

    response = client.post(
        f"{IMPORTS_URL}/upload",
        data={"dictionary_code": dictionary_code, "import_mode": "create"},
        files={
            "file": (
                "units.xlsx",
                buffer.getvalue(),
                "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            )
        },
        headers=HEADERS,
    )

    assert response.status_code == 200
    batch = response.json()["data"]
    assert batch["file_name"] == "units.xlsx"
    assert batch["total_records"] == 2
    assert batch["successful_records"] == 2
    items = _items(client, dictionary_code)
    assert items["1001"]["is_active"] is False
    assert items["KG"]["name_en"] == "Kilogram"


def test_upload_rejects_non_xlsx(client: TestClient, dictionary_code: str):
    response = client.post(
        f"{IMPORTS_URL}/upload",
        data={"dictionary_code": dictionary_code},
        files={"file": ("units.csv", b"code,name\nA,Alpha\n", "text/csv")},
        headers=HEADERS,
    )

    assert response.status_code == 400
