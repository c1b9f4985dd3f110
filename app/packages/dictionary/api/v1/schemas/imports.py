"""批量导入、撤销与重做相关的请求与响应模型。"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.packages.dictionary.api.v1.schemas.common import PageData, ResponseEnvelope
from app.packages.dictionary.core.enums import ImportMode


class ImportRowsRequest(BaseModel):
    """以 JSON 行提交的批量导入。"""

    dictionary_code: str = Field(..., min_length=1, max_length=100, description="目标字典编码")
    import_mode: ImportMode = Field(default=ImportMode.UPSERT, description="create / update / upsert")
    skip_errors: bool = Field(default=False, description="为 false 时任一行失败则整批不生效")
    file_name: Optional[str] = Field(default=None, max_length=255, description="来源文件名，仅用于展示")
    rows: List[Dict[str, Any]] = Field(..., min_length=1, description="已解析的表格行，列名与导入模板一致")


class ImportValidateRequest(BaseModel):
    dictionary_code: str = Field(..., min_length=1, max_length=100)
    import_mode: ImportMode = Field(default=ImportMode.UPSERT)
    rows: List[Dict[str, Any]] = Field(..., min_length=1)


class CapabilitiesData(BaseModel):
    batch_id: int
    can_undo: bool
    can_redo: bool


class StackStateData(BaseModel):
    dictionary_code: str
    undo_top_id: Optional[int] = None
    redo_top_id: Optional[int] = None


class ImportBatchItem(BaseModel):
    id: int
    dictionary_code: str
    file_name: str
    import_mode: str
    skip_errors: bool
    status: str
    total_records: int
    successful_records: int
    failed_records: int
    error_log: List[str]
    performed_by: Optional[int] = None
    create_time: Optional[str] = None
    update_time: Optional[str] = None
    completed_at: Optional[str] = None
    rolled_back_at: Optional[str] = None
    rolled_back_by: Optional[int] = None
    redone_at: Optional[str] = None
    redone_by: Optional[int] = None


class ImportBatchHistoryItem(ImportBatchItem):
    can_undo: bool
    can_redo: bool


class ImportBatchResult(ImportBatchItem):
    capabilities: CapabilitiesData


class JournalEntryItem(BaseModel):
    sequence_no: int
    item_id: int
    item_code: str
    operation: str
    before_state: Optional[Dict[str, Any]] = None
    after_state: Dict[str, Any]


class ImportBatchDetail(ImportBatchResult):
    journal: List[JournalEntryItem]


class ImportHistoryData(PageData[ImportBatchHistoryItem]):
    stack: StackStateData


class ConflictItem(BaseModel):
    sequence_no: int
    item_id: int
    item_code: str
    reason: str


class ReplayData(BaseModel):
    batch: ImportBatchItem
    applied: int
    already_applied: int
    conflicts: List[ConflictItem]
    completed: bool
    discarded: bool
    capabilities: CapabilitiesData


class RowErrorItem(BaseModel):
    row: Optional[int] = None
    error_code: Optional[str] = None
    detail: Optional[str] = None
    message: str


class BatchErrorsData(BaseModel):
    batch_id: int
    total: int
    items: List[RowErrorItem]


class RowVerdict(BaseModel):
    row: int
    code: Optional[str] = None
    action: Optional[str] = None
    target_item_id: Optional[int] = None
    error: Optional[str] = None
    warnings: List[str]


class ValidationData(BaseModel):
    dictionary_code: str
    import_mode: str
    total: int
    valid: int
    invalid: int
    warnings: int
    rows: List[RowVerdict]


class BatchDeletionData(BaseModel):
    id: int


ImportBatchResponse = ResponseEnvelope[ImportBatchResult]
ImportBatchDetailResponse = ResponseEnvelope[ImportBatchDetail]
ImportHistoryResponse = ResponseEnvelope[ImportHistoryData]
ReplayResponse = ResponseEnvelope[ReplayData]
BatchErrorsResponse = ResponseEnvelope[BatchErrorsData]
CapabilitiesResponse = ResponseEnvelope[CapabilitiesData]
StackStateResponse = ResponseEnvelope[StackStateData]
ValidationResponse = ResponseEnvelope[ValidationData]
BatchDeletionResponse = ResponseEnvelope[BatchDeletionData]
