"""字典批量导入、撤销/重做与导入历史的路由定义。"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.packages.dictionary.api.v1.endpoints.audit import record_operation_log
from app.packages.dictionary.api.v1.schemas.imports import (
    BatchDeletionResponse,
    BatchErrorsResponse,
    CapabilitiesResponse,
    ImportBatchDetailResponse,
    ImportBatchResponse,
    ImportHistoryResponse,
    ImportRowsRequest,
    ImportValidateRequest,
    ReplayResponse,
    StackStateResponse,
    ValidationResponse,
)
from app.packages.dictionary.core.dependencies import get_db, get_operator_id
from app.packages.dictionary.core.enums import ImportMode, OperationLogTypeEnum
from app.packages.dictionary.core.timezone import now as tz_now
from app.packages.dictionary.services.dictionary_import_service import dictionary_import_service

router = APIRouter(prefix="/dictionary-imports", tags=["dictionary-imports"])

_CLASS_PREFIX = "app.packages.dictionary.api.v1.endpoints.imports"


def _batch_dictionary_code(payload: Optional[dict[str, Any]], error: Optional[Exception]) -> Optional[str]:
    # 冲突时批次信息位于异常携带的 data 中
    data = (payload or {}).get("data") or getattr(error, "data", None)
    if not isinstance(data, dict):
        return None
    batch = data.get("batch") or data
    return batch.get("dictionary_code")


@router.post("", response_model=ImportBatchResponse)
def import_rows(
    payload: ImportRowsRequest,
    request: Request,
    db: Session = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
) -> ImportBatchResponse:
    """按指定模式导入 JSON 行；严格模式下任一行失败则整批不生效。"""
    started_at = tz_now()
    error: Optional[Exception] = None
    response_payload: Optional[dict[str, Any]] = None
    audit_body = {
        "dictionary_code": payload.dictionary_code,
        "import_mode": payload.import_mode.value,
        "skip_errors": payload.skip_errors,
        "file_name": payload.file_name,
        "row_count": len(payload.rows),
    }

    try:
        response_payload = dictionary_import_service.import_rows(
            db,
            dictionary_code=payload.dictionary_code,
            mode=payload.import_mode,
            rows=payload.rows,
            skip_errors=payload.skip_errors,
            file_name=payload.file_name,
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
            business_type=OperationLogTypeEnum.IMPORT.value,
            class_method=f"{_CLASS_PREFIX}.import_rows",
            dictionary_code=payload.dictionary_code,
            request_body=audit_body,
            response_body=response_payload,
            error=error,
            started_at=started_at,
        )


@router.post("/upload", response_model=ImportBatchResponse)
def import_upload(
    request: Request,
    dictionary_code: str = Form(..., description="目标字典编码"),
    import_mode: ImportMode = Form(ImportMode.UPSERT, description="create / update / upsert"),
    skip_errors: bool = Form(False, description="是否跳过失败行"),
    file: UploadFile = File(..., description="按导入模板填写的 xlsx 文件"),
    db: Session = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
) -> ImportBatchResponse:
    """上传 xlsx 文件导入，解析后与 JSON 导入走同一流程。"""
    started_at = tz_now()
    error: Optional[Exception] = None
    response_payload: Optional[dict[str, Any]] = None
    audit_body = {
        "dictionary_code": dictionary_code,
        "import_mode": import_mode.value,
        "skip_errors": skip_errors,
        "file_name": file.filename,
    }

    try:
        response_payload = dictionary_import_service.import_upload(
            db,
            dictionary_code=dictionary_code,
            mode=import_mode,
            skip_errors=skip_errors,
            file=file,
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
            business_type=OperationLogTypeEnum.IMPORT.value,
            class_method=f"{_CLASS_PREFIX}.import_upload",
            dictionary_code=dictionary_code,
            request_body=audit_body,
            response_body=response_payload,
            error=error,
            started_at=started_at,
        )


@router.post("/validate", response_model=ValidationResponse)
def validate_import(
    payload: ImportValidateRequest,
    db: Session = Depends(get_db),
) -> ValidationResponse:
    """预览校验结果，不写入任何数据。"""
    return dictionary_import_service.validate_import(
        db,
        dictionary_code=payload.dictionary_code,
        mode=payload.import_mode,
        rows=payload.rows,
    )


@router.get("/template")
def download_template() -> StreamingResponse:
    """下载导入模板。"""
    return dictionary_import_service.download_template()


@router.get("", response_model=ImportHistoryResponse)
def list_import_history(
    dictionary_code: str = Query(..., min_length=1, description="字典编码"),
    statuses: Optional[list[str]] = Query(None, description="批次状态过滤，可多选"),
    page: int = Query(1, ge=1, description="页码，从 1 开始"),
    page_size: int = Query(20, ge=1, le=200, description="每页数量"),
    db: Session = Depends(get_db),
) -> ImportHistoryResponse:
    """按时间倒序返回字典的导入历史。"""
    return dictionary_import_service.list_history(
        db,
        dictionary_code=dictionary_code,
        statuses=statuses,
        page=page,
        page_size=page_size,
    )


@router.get("/stacks/{dictionary_code}", response_model=StackStateResponse)
def get_stack_state(dictionary_code: str, db: Session = Depends(get_db)) -> StackStateResponse:
    return dictionary_import_service.get_stack_state(db, dictionary_code=dictionary_code)


@router.get("/{batch_id}", response_model=ImportBatchDetailResponse)
def get_import_batch(batch_id: int, db: Session = Depends(get_db)) -> ImportBatchDetailResponse:
    """返回批次详情、变更日志以及当前的撤销/重做能力。"""
    return dictionary_import_service.get_batch_detail(db, batch_id=batch_id)


@router.get("/{batch_id}/errors", response_model=BatchErrorsResponse)
def get_import_errors(batch_id: int, db: Session = Depends(get_db)) -> BatchErrorsResponse:
    return dictionary_import_service.get_batch_errors(db, batch_id=batch_id)


@router.get("/{batch_id}/capabilities", response_model=CapabilitiesResponse)
def get_import_capabilities(batch_id: int, db: Session = Depends(get_db)) -> CapabilitiesResponse:
    return dictionary_import_service.get_capabilities(db, batch_id=batch_id)


@router.post("/{batch_id}/undo", response_model=ReplayResponse)
def undo_import(
    batch_id: int,
    request: Request,
    db: Session = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
) -> ReplayResponse:
    """撤销栈顶批次；存在冲突时返回 409 与冲突报告。"""
    started_at = tz_now()
    error: Optional[Exception] = None
    response_payload: Optional[dict[str, Any]] = None

    try:
        response_payload = dictionary_import_service.undo_import(db, batch_id=batch_id, operator_id=operator_id)
        return response_payload
    except Exception as exc:
        error = exc
        raise
    finally:
        record_operation_log(
            db=db,
            request=request,
            operator_id=operator_id,
            business_type=OperationLogTypeEnum.UNDO.value,
            class_method=f"{_CLASS_PREFIX}.undo_import",
            dictionary_code=_batch_dictionary_code(response_payload, error),
            request_body={"batch_id": batch_id},
            response_body=response_payload,
            error=error,
            started_at=started_at,
        )


@router.post("/{batch_id}/redo", response_model=ReplayResponse)
def redo_import(
    batch_id: int,
    request: Request,
    db: Session = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
) -> ReplayResponse:
    """重做最近一次被撤销的批次。"""
    started_at = tz_now()
    error: Optional[Exception] = None
    response_payload: Optional[dict[str, Any]] = None

    try:
        response_payload = dictionary_import_service.redo_import(db, batch_id=batch_id, operator_id=operator_id)
        return response_payload
    except Exception as exc:
        error = exc
        raise
    finally:
        record_operation_log(
            db=db,
            request=request,
            operator_id=operator_id,
            business_type=OperationLogTypeEnum.REDO.value,
            class_method=f"{_CLASS_PREFIX}.redo_import",
            dictionary_code=_batch_dictionary_code(response_payload, error),
            request_body={"batch_id": batch_id},
            response_body=response_payload,
            error=error,
            started_at=started_at,
        )


@router.delete("/{batch_id}", response_model=BatchDeletionResponse)
def delete_import_history(
    batch_id: int,
    request: Request,
    db: Session = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
) -> BatchDeletionResponse:
    """删除导入历史；仍位于撤销/重做栈顶的批次不可删除。"""
    started_at = tz_now()
    error: Optional[Exception] = None
    response_payload: Optional[dict[str, Any]] = None

    try:
        response_payload = dictionary_import_service.delete_history(db, batch_id=batch_id)
        return response_payload
    except Exception as exc:
        error = exc
        raise
    finally:
        record_operation_log(
            db=db,
            request=request,
            operator_id=operator_id,
            business_type=OperationLogTypeEnum.DELETE.value,
            class_method=f"{_CLASS_PREFIX}.delete_import_history",
            dictionary_code=None,
            request_body={"batch_id": batch_id},
            response_body=response_payload,
            error=error,
            started_at=started_at,
        )
