"""应用级行为：健康检查、请求 ID 与统一的参数校验错误。"""

from fastapi.testclient import TestClient


def test_health_check_echoes_request_id(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.status_code == 200
    assert response.json() == {"msg": "OK", "data": {"status": "healthy"}, "code": 200}
    assert response.headers["x-request-id"] == "req-123"


def test_request_id_is_generated_when_missing(client: TestClient):
    response = client.get("/health")

    assert len(response.headers["x-request-id"]) == 32


def test_validation_errors_use_response_envelope(client: TestClient):
    response = client.post("/api/v1/dictionary-imports", json={"dictionary_code": "units", "rows": []})

    assert response.status_code == 422
    payload = response.json()
    assert payload["code"] == 422
    assert payload["msg"] == "请求参数验证失败"
    assert isinstance(payload["data"], list)
