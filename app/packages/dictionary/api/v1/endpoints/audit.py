"""变更接口的操作日志记录。"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from app.packages.dictionary.core.constants import OPERATION_LOG_MODULE
from app.packages.dictionary.core.enums import OperationLogStatusEnum
from app.packages.dictionary.core.logger import logger
from app.packages.dictionary.core.timezone import elapsed_ms, now as tz_now
from app.packages.dictionary.services.operation_log_service import operation_log_service


def record_operation_log(
    *,
    db: Session,
    request: Request,
    operator_id: Optional[int],
    business_type: str,
    class_method: str,
    dictionary_code: Optional[str],
    request_body: Optional[dict[str, Any]],
    response_body: Optional[dict[str, Any]],
    error: Optional[Exception],
    started_at: datetime,
) -> None:
    """记录一次变更接口调用；日志写入失败只告警，不影响接口结果。"""
    finished_at = tz_now()
    cost_ms = elapsed_ms(started_at)
    status = OperationLogStatusEnum.SUCCESS if error is None else OperationLogStatusEnum.FAILURE
    if response_body is None and getattr(error, "data", None) is not None:
        response_body = {"data": error.data}

    try:
        if error is not None:
            # 失败请求可能留下未结束的事务
            db.rollback()
        operation_log_service.record_operation_log(
            db,
            payload={
                "module": OPERATION_LOG_MODULE,
                "business_type": business_type,
                "dictionary_code": dictionary_code,
                "operator_id": operator_id,
                "operator_ip": _extract_client_ip(request),
                "request_method": request.method,
                "request_uri": _build_request_uri(request),
                "class_method": class_method,
                "request_params": _safe_json_dump(request_body),
                "response_params": _safe_json_dump(response_body),
                "status": status.value,
                "error_message": _describe_error(error),
                "cost_ms": cost_ms,
                "operate_time": finished_at,
            },
        )
    except Exception as exc:  # pragma: no cover - 日志失败不可阻断主流程
        db.rollback()
        logger.warning("Failed to record dictionary import operation log: %s", exc)


def _describe_error(error: Optional[Exception]) -> Optional[str]:
    if error is None:
        return None
    return getattr(error, "msg", None) or str(error) or error.__class__.__name__


def _extract_client_ip(request: Request) -> Optional[str]:
    for header in ("x-forwarded-for", "x-real-ip", "x-client-ip"):
        value = request.headers.get(header)
        if value:
            return value.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def _safe_json_dump(payload: Optional[Any]) -> Optional[str]:
    if payload is None:
        return None
    try:
        return json.dumps(payload, ensure_ascii=False, default=str)
    except Exception as exc:  # pragma: no cover - 防御性策略
        logger.debug("Failed to serialize operation log payload: %s", exc)
        return json.dumps({"unserializable": True}, ensure_ascii=False)


def _build_request_uri(request: Request) -> str:
    path = request.url.path
    query = request.url.query
    if query:
        return f"{path}?{query}"
    return path
