"""字典项服务：分页查询、按版本号编辑以及批量导出。"""

from __future__ import annotations

import io
from typing import Any, Dict, List, Mapping, Optional

from fastapi.responses import StreamingResponse
from openpyxl import Workbook
from sqlalchemy.orm import Session

from app.packages.dictionary.core.constants import (
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_OK,
    IMPORT_COLUMNS,
    SUPPORTED_LOCALES,
)
from app.packages.dictionary.core.exceptions import AppException, ConflictError, ItemNotFoundError
from app.packages.dictionary.core.logger import logger
from app.packages.dictionary.core.responses import create_response
from app.packages.dictionary.core.timezone import file_stamp, format_datetime
from app.packages.dictionary.crud.dictionary import dictionary_item_crud
from app.packages.dictionary.models.dictionary import CONTENT_FIELDS, DictionaryItem

_XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

_EXPORT_FIELD_SETS = {"full", "minimal"}


class DictionaryService:
    """封装字典项的查询与手工维护逻辑。"""

    def list_items(
        self,
        db: Session,
        *,
        dictionary_code: str,
        keyword: Optional[str] = None,
        active_only: bool = False,
        page: int = 1,
        page_size: int = 50,
    ) -> Dict[str, Any]:
        page = max(page, 1)
        page_size = max(page_size, 1)
        items, total = dictionary_item_crud.list_with_filters(
            db,
            dictionary_code=dictionary_code.strip(),
            keyword=keyword,
            active_only=active_only,
            skip=(page - 1) * page_size,
            limit=page_size,
        )
        payload = {
            "total": total,
            "items": [self._serialize_item(item) for item in items],
            "page": page,
            "page_size": page_size,
        }
        return create_response("获取字典项列表成功", payload, HTTP_STATUS_OK)

    def get_item(self, db: Session, *, item_id: int) -> Dict[str, Any]:
        item = self._get_item(db, item_id)
        return create_response("获取字典项成功", self._serialize_item(item), HTTP_STATUS_OK)

    def update_item(
        self,
        db: Session,
        *,
        item_id: int,
        values: Mapping[str, Any],
        expected_version: Optional[int],
        operator_id: Optional[int],
    ) -> Dict[str, Any]:
        """直接编辑字典项；提供 ``expected_version`` 时与存储版本不一致则返回 409。"""
        item = self._get_item(db, item_id)
        changes = {key: value for key, value in values.items() if key in CONTENT_FIELDS}
        if "name" in changes and not (changes["name"] or "").strip():
            raise AppException("名称不能为空", HTTP_STATUS_BAD_REQUEST)
        for key in ("sort_order", "is_active"):
            if key in changes and changes[key] is None:
                changes.pop(key)

        version = item.version if expected_version is None else expected_version
        try:
            dictionary_item_crud.update_with_version(
                db,
                item,
                expected_version=version,
                values=changes,
                operator_id=operator_id,
            )
            db.commit()
        except ConflictError:
            db.rollback()
            logger.info("Rejected stale edit of dictionary item %s (expected version %s)", item_id, version)
            raise
        db.refresh(item)
        return create_response("更新字典项成功", self._serialize_item(item), HTTP_STATUS_OK)

    def export_items(
        self,
        db: Session,
        *,
        dictionary_code: str,
        fields: str = "full",
        locale: Optional[str] = None,
        include_inactive: bool = True,
    ) -> StreamingResponse:
        """导出为与导入模板列名一致的 xlsx，可直接修改后再导入。"""
        columns = self._export_columns(fields, locale)
        items = dictionary_item_crud.list_for_export(
            db,
            dictionary_code=dictionary_code.strip(),
            include_inactive=include_inactive,
        )

        workbook = Workbook()
        sheet = workbook.active
        sheet.title = dictionary_code.strip()[:31] or "dictionary"
        sheet.append(columns)
        for item in items:
            sheet.append([self._cell_value(getattr(item, column)) for column in columns])

        buffer = io.BytesIO()
        workbook.save(buffer)
        buffer.seek(0)

        filename = f"{dictionary_code.strip()}-{file_stamp()}.xlsx"
        response = StreamingResponse(buffer, media_type=_XLSX_MEDIA_TYPE)
        response.headers["Content-Disposition"] = f"attachment; filename={filename}"
        return response

    # ------------------------------------------------------------------
    # 辅助方法
    # ------------------------------------------------------------------

    def _get_item(self, db: Session, item_id: int) -> DictionaryItem:
        item = dictionary_item_crud.get(db, item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    def _export_columns(self, fields: str, locale: Optional[str]) -> List[str]:
        normalized_fields = (fields or "full").strip().lower()
        if normalized_fields not in _EXPORT_FIELD_SETS:
            raise AppException(f"导出字段集不合法：{fields}", HTTP_STATUS_BAD_REQUEST)
        normalized_locale = (locale or "").strip().lower() or None
        if normalized_locale is not None and normalized_locale not in SUPPORTED_LOCALES:
            raise AppException(f"不支持的语言：{locale}", HTTP_STATUS_BAD_REQUEST)

        if normalized_fields == "minimal":
            columns = ["code", "name"]
            locales = [normalized_locale] if normalized_locale else list(SUPPORTED_LOCALES)
            columns.extend(f"name_{code}" for code in locales)
            return columns

        if normalized_locale is None:
            return list(IMPORT_COLUMNS)
        hidden = {f"{prefix}_{code}" for prefix in ("name", "description") for code in SUPPORTED_LOCALES}
        hidden -= {f"name_{normalized_locale}", f"description_{normalized_locale}"}
        return [column for column in IMPORT_COLUMNS if column not in hidden]

    @staticmethod
    def _cell_value(value: Any) -> Any:
        return "" if value is None else value

    def _serialize_item(self, item: DictionaryItem) -> Dict[str, Any]:
        data = item.snapshot()
        data.update(
            {
                "created_by": item.created_by,
                "updated_by": item.updated_by,
                "create_time": format_datetime(item.create_time),
                "update_time": format_datetime(item.update_time),
            }
        )
        return data


dictionary_service = DictionaryService()
