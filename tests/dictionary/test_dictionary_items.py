"""字典项查询、编辑与导出接口的测试。"""

import io

from fastapi.testclient import TestClient
from openpyxl import load_workbook

HEADERS = {"X-Operator-Id": "42"}


def _import(client: TestClient, dictionary_code: str, rows):
    response = client.post(
        "/api/v1/dictionary-imports",
        json={"dictionary_code": dictionary_code, "rows": rows},
        headers=HEADERS,
    )
    assert response.status_code == 200
    return response.json()["data"]


def _export_rows(response):
    sheet = load_workbook(io.BytesIO(response.content)).active
    return [list(row) for row in sheet.iter_rows(values_only=True)]


def test_list_and_search_items(client: TestClient, dictionary_code: str):
    _import(
        client,
        dictionary_code,
        [
            {"code": "KG", "name": "Kilogram", "name_ru": "Килограмм", "sort_order": 2},
            {"code": "G", "name": "Gram", "sort_order": 1},
            {"code": "T", "name": "Tonne", "sort_order": 3, "is_active": False},
        ],
    )

    listing = client.get(f"/api/v1/dictionaries/{dictionary_code}/items").json()["data"]
    assert listing["total"] == 3
    assert [item["code"] for item in listing["items"]] == ["G", "KG", "T"]

    search = client.get(f"/api/v1/dictionaries/{dictionary_code}/items", params={"keyword": "Килог"}).json()["data"]
    assert [item["code"] for item in search["items"]] == ["KG"]

    active = client.get(f"/api/v1/dictionaries/{dictionary_code}/items", params={"active_only": True}).json()["data"]
    assert active["total"] == 2


def test_edit_item_with_version_check(client: TestClient, dictionary_code: str):
    _import(client, dictionary_code, [{"code": "KG", "name": "Kilogram"}])
    item = client.get(f"/api/v1/dictionaries/{dictionary_code}/items").json()["data"]["items"][0]
    assert item["version"] == 1
    assert item["created_by"] == 42

    updated = client.put(
        f"/api/v1/dictionaries/items/{item['id']}",
        json={"name": "Kilo", "color": "#112233", "version": 1},
        headers={"X-Operator-Id": "5"},
    )
    assert updated.status_code == 200
    data = updated.json()["data"]
    assert data["name"] == "Kilo"
    assert data["color"] == "#112233"
    assert data["version"] == 2
    assert data["updated_by"] == 5

    stale = client.put(
        f"/api/v1/dictionaries/items/{item['id']}",
        json={"name": "Stale", "version": 1},
        headers=HEADERS,
    )
    assert stale.status_code == 409
    assert client.get(f"/api/v1/dictionaries/items/{item['id']}").json()["data"]["name"] == "Kilo"

    invalid = client.put(
        f"/api/v1/dictionaries/items/{item['id']}",
        json={"color": "blue"},
        headers=HEADERS,
    )
    assert invalid.status_code == 422

    missing = client.put("/api/v1/dictionaries/items/987654321", json={"name": "Ghost"}, headers=HEADERS)
    assert missing.status_code == 404


def test_export_matches_import_template(client: TestClient, dictionary_code: str):
    _import(
        client,
        dictionary_code,
        [
            {"code": "KG", "name": "Kilogram", "name_en": "Kilogram", "name_ru": "Килограмм"},
            {"code": "T", "name": "Tonne", "is_active": False},
        ],
    )

    full = client.get(f"/api/v1/dictionaries/{dictionary_code}/export")
    assert full.status_code == 200
    rows = _export_rows(full)
    assert rows[0][:2] == ["code", "name"]
    assert len(rows) == 3

    minimal = client.get(
        f"/api/v1/dictionaries/{dictionary_code}/export",
        params={"fields": "minimal", "locale": "en", "include_inactive": False},
    )
    assert _export_rows(minimal) == [["code", "name", "name_en"], ["KG", "Kilogram", "Kilogram"]]

    localized = _export_rows(client.get(f"/api/v1/dictionaries/{dictionary_code}/export", params={"locale": "ru"}))
    assert "name_ru" in localized[0]
    assert "name_en" not in localized[0]
    assert "description_ru" in localized[0]

    bad = client.get(f"/api/v1/dictionaries/{dictionary_code}/export", params={"fields": "everything"})
    assert bad.status_code == 400
