"""操作日志业务逻辑：记录变更接口的审计信息并提供查询。"""

from __future__ import annotations

import uuid
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.packages.dictionary.core.constants import HTTP_STATUS_OK
from app.packages.dictionary.core.enums import OperationLogStatusEnum, OperationLogTypeEnum
from app.packages.dictionary.core.exceptions import AppException
from app.packages.dictionary.core.responses import create_response
from app.packages.dictionary.core.timezone import format_datetime, now
from app.packages.dictionary.crud.operation_log import operation_log_crud
from app.packages.dictionary.models.operation_log import OperationLog


class OperationLogService:
    _OPERATION_TYPE_LABELS = {
        OperationLogTypeEnum.IMPORT.value: "导入",
        OperationLogTypeEnum.UNDO.value: "撤销",
        OperationLogTypeEnum.REDO.value: "重做",
        OperationLogTypeEnum.UPDATE.value: "修改",
        OperationLogTypeEnum.DELETE.value: "删除",
        OperationLogTypeEnum.OTHER.value: "其他",
    }

    _OPERATION_STATUS_LABELS = {
        OperationLogStatusEnum.SUCCESS.value: "成功",
        OperationLogStatusEnum.FAILURE.value: "失败",
    }

    def list_operation_logs(
        self,
        db: Session,
        *,
        dictionary_code: Optional[str] = None,
        operation_types: Optional[Iterable[str]] = None,
        statuses: Optional[Iterable[str]] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> dict:
        page = max(page, 1)
        page_size = max(page_size, 1)

        items, total = operation_log_crud.list_with_filters(
            db,
            dictionary_code=dictionary_code,
            business_types=self._normalize(operation_types, self._OPERATION_TYPE_LABELS, "操作类型"),
            statuses=self._normalize(statuses, self._OPERATION_STATUS_LABELS, "操作状态"),
            skip=(page - 1) * page_size,
            limit=page_size,
        )
        payload = {
            "total": total,
            "items": [self._serialize(item) for item in items],
            "page": page,
            "page_size": page_size,
        }
        return create_response("获取操作日志列表成功", payload, HTTP_STATUS_OK)

    def record_operation_log(
        self,
        db: Session,
        *,
        payload: dict,
        log_number: Optional[str] = None,
    ) -> OperationLog:
        serial = log_number or self.generate_operation_number()
        return operation_log_crud.create(db, payload | {"log_number": serial})

    # ------------------------------------------------------------------
    # 内部辅助方法
    # ------------------------------------------------------------------

    def _normalize(self, values: Optional[Iterable[str]], labels: dict, field_name: str) -> Optional[list[str]]:
        if not values:
            return None
        normalized = []
        for raw in values:
            value = (raw or "").strip().lower()
            if not value:
                continue
            if value not in labels:
                raise AppException(f"{field_name}不合法：{raw}")
            normalized.append(value)
        return normalized or None

    def _serialize(self, item: OperationLog) -> dict:
        return {
            "log_number": item.log_number,
            "module": item.module,
            "operation_type": self._OPERATION_TYPE_LABELS.get(item.business_type, item.business_type),
            "operation_type_code": item.business_type,
            "dictionary_code": item.dictionary_code,
            "operator_id": item.operator_id,
            "operator_ip": item.operator_ip,
            "request_method": item.request_method,
            "request_uri": item.request_uri,
            "class_method": item.class_method,
            "request_params": item.request_params,
            "response_params": item.response_params,
            "status": self._OPERATION_STATUS_LABELS.get(item.status, item.status),
            "status_code": item.status,
            "error_message": item.error_message,
            "operate_time": format_datetime(item.operate_time),
            "cost_ms": item.cost_ms,
        }

    @staticmethod
    def generate_operation_number() -> str:
        # 时间戳在同一微秒内可能重复，附加随机后缀
        return f"{now().strftime('%Y%m%d%H%M%S%f')}{uuid.uuid4().hex[:8]}"


operation_log_service = OperationLogService()
