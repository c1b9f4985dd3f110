"""操作日志查询路由。"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.packages.dictionary.api.v1.schemas.logs import OperationLogListResponse
from app.packages.dictionary.core.dependencies import get_db
from app.packages.dictionary.services.operation_log_service import operation_log_service

router = APIRouter(prefix="/operation-logs", tags=["operation-logs"])


@router.get("", response_model=OperationLogListResponse)
def list_operation_logs(
    dictionary_code: Optional[str] = Query(None, description="字典编码"),
    operation_types: Optional[list[str]] = Query(None, description="操作类型，可多选"),
    statuses: Optional[list[str]] = Query(None, description="操作状态过滤，可多选"),
    page: int = Query(1, ge=1, description="页码，从 1 开始"),
    page_size: int = Query(20, ge=1, le=200, description="每页数量"),
    db: Session = Depends(get_db),
) -> OperationLogListResponse:
    """按时间倒序返回导入、撤销、重做等变更操作的审计记录。"""
    return operation_log_service.list_operation_logs(
        db,
        dictionary_code=dictionary_code,
        operation_types=operation_types,
        statuses=statuses,
        page=page,
        page_size=page_size,
    )
