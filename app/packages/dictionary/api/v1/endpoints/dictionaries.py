"""字典项查询、编辑与导出的路由定义。"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.packages.dictionary.api.v1.endpoints.audit import record_operation_log
from app.packages.dictionary.api.v1.schemas.dictionary import (
    DictionaryItemListResponse,
    DictionaryItemResponse,
    DictionaryItemUpdateRequest,
)
from app.packages.dictionary.core.dependencies import get_db, get_operator_id
from app.packages.dictionary.core.enums import OperationLogTypeEnum
from app.packages.dictionary.core.timezone import now as tz_now
from app.packages.dictionary.services.dictionary_service import dictionary_service

router = APIRouter(prefix="/dictionaries", tags=["dictionaries"])


@router.get("/items/{item_id}", response_model=DictionaryItemResponse)
def get_dictionary_item(item_id: int, db: Session = Depends(get_db)) -> DictionaryItemResponse:
    return dictionary_service.get_item(db, item_id=item_id)


@router.put("/items/{item_id}", response_model=DictionaryItemResponse)
def update_dictionary_item(
    item_id: int,
    payload: DictionaryItemUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
) -> DictionaryItemResponse:
    """直接编辑字典项；携带 ``version`` 时与存储版本不一致返回 409。"""
    started_at = tz_now()
    error: Optional[Exception] = None
    response_payload: Optional[dict[str, Any]] = None
    body = payload.model_dump(exclude_unset=True)
    expected_version = body.pop("version", None)

    try:
        response_payload = dictionary_service.update_item(
            db,
            item_id=item_id,
            values=body,
            expected_version=expected_version,
            operator_id=operator_id,
        )
        return response_payload
    except Exception as exc:
        error = exc
        raise
    finally:
        record_operation_log(
            db=db,
            request=request,
            operator_id=operator_id,
            business_type=OperationLogTypeEnum.UPDATE.value,
            class_method="app.packages.dictionary.api.v1.endpoints.dictionaries.update_dictionary_item",
            dictionary_code=((response_payload or {}).get("data") or {}).get("dictionary_code"),
            request_body={"item_id": item_id, "version": expected_version, **body},
            response_body=response_payload,
            error=error,
            started_at=started_at,
        )


@router.get("/{dictionary_code}/items", response_model=DictionaryItemListResponse)
def list_dictionary_items(
    dictionary_code: str,
    keyword: Optional[str] = Query(None, description="按编码或任一语言名称模糊搜索"),
    active_only: bool = Query(False, description="仅返回启用的字典项"),
    page: int = Query(1, ge=1, description="页码，从 1 开始"),
    page_size: int = Query(50, ge=1, le=500, description="每页数量"),
    db: Session = Depends(get_db),
) -> DictionaryItemListResponse:
    return dictionary_service.list_items(
        db,
        dictionary_code=dictionary_code,
        keyword=keyword,
        active_only=active_only,
        page=page,
        page_size=page_size,
    )


@router.get("/{dictionary_code}/export")
def export_dictionary_items(
    dictionary_code: str,
    fields: str = Query("full", description="full：全部列；minimal：编码与名称"),
    locale: Optional[str] = Query(None, description="仅导出指定语言（en / ru / uz）的本地化列"),
    include_inactive: bool = Query(True, description="是否包含停用的字典项"),
    db: Session = Depends(get_db),
) -> StreamingResponse:
    """导出为与导入模板兼容的 xlsx。"""
    return dictionary_service.export_items(
        db,
        dictionary_code=dictionary_code,
        fields=fields,
        locale=locale,
        include_inactive=include_inactive,
    )
