"""操作日志接口的测试。"""

import json

from fastapi.testclient import TestClient

HEADERS = {"X-Operator-Id": "42"}


def _logs(client: TestClient, **params):
    response = client.get("/api/v1/operation-logs", params={"page_size": 200, **params})
    assert response.status_code == 200
    return response.json()["data"]


def test_mutations_are_audited(client: TestClient, dictionary_code: str):
    imported = client.post(
        "/api/v1/dictionary-imports",
        json={"dictionary_code": dictionary_code, "rows": [{"code": "KG", "name": "Kilogram"}]},
        headers=HEADERS,
    ).json()["data"]
    assert client.post(f"/api/v1/dictionary-imports/{imported['id']}/undo", headers=HEADERS).status_code == 200

    logs = _logs(client, dictionary_code=dictionary_code)
    assert [item["operation_type_code"] for item in logs["items"]] == ["undo", "import"]
    import_log = logs["items"][1]
    assert import_log["operator_id"] == 42
    assert import_log["status_code"] == "success"
    assert import_log["request_method"] == "POST"
    assert json.loads(import_log["request_params"])["row_count"] == 1

    undo_logs = _logs(client, dictionary_code=dictionary_code, operation_types=["undo"])
    assert undo_logs["total"] == 1


def test_failed_mutations_are_audited(client: TestClient, dictionary_code: str):
    response = client.post("/api/v1/dictionary-imports/987654321/redo", headers=HEADERS)
    assert response.status_code == 404

    failures = _logs(client, operation_types=["redo"], statuses=["failure"])["items"]
    matching = [item for item in failures if json.loads(item["request_params"]) == {"batch_id": 987654321}]
    assert matching
    assert matching[0]["error_message"] == "导入批次不存在：987654321"


def test_unknown_operation_type_is_rejected(client: TestClient):
    response = client.get("/api/v1/operation-logs", params={"operation_types": ["login"]})

    assert response.status_code == 400
