"""字典批量导入服务：对外提供导入、撤销、重做与导入历史查询。

所有变更操作按字典编码加互斥锁串行执行；查询不加锁。
"""

from __future__ import annotations

import io
import re
import zipfile
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from fastapi import UploadFile
from fastapi.responses import StreamingResponse
from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy.orm import Session

from app.packages.dictionary.core.config import get_settings
from app.packages.dictionary.core.constants import (
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_CONFLICT,
    HTTP_STATUS_OK,
    IMPORT_COLUMNS,
)
from app.packages.dictionary.core.enums import ImportMode, ImportStatus, RowErrorCode
from app.packages.dictionary.core.exceptions import (
    AppException,
    BatchNotFoundError,
    BatchPinnedError,
    ImportTooLargeError,
    InvalidStateError,
)
from app.packages.dictionary.core.locks import dictionary_lock
from app.packages.dictionary.core.logger import logger
from app.packages.dictionary.core.responses import create_response
from app.packages.dictionary.core.timezone import format_datetime
from app.packages.dictionary.crud.import_batch import change_journal_crud, import_batch_crud
from app.packages.dictionary.models.import_batch import ChangeJournalEntry, ImportBatch
from app.packages.dictionary.services.import_executor import ImportExecutor, import_executor
from app.packages.dictionary.services.row_validator import format_row_error, validate_rows
from app.packages.dictionary.services.undo_redo_service import (
    ReplayResult,
    UndoRedoService,
    undo_redo_service,
)
from app.packages.dictionary.services.undo_stack_manager import UndoStackManager, undo_stack_manager

_XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
_DICTIONARY_CODE_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{1,100}$")
_ROW_ERROR_PATTERN = re.compile(r"^Row (?P<row>\d+): (?P<code>[A-Za-z]+)\((?P<detail>.*)\)$")

_TEMPLATE_SAMPLE = (
    "KG",
    "Kilogram",
    "Kilogram",
    "Килограмм",
    "Kilogramm",
    "Unit of mass",
    "Unit of mass",
    "Единица массы",
    "Massa birligi",
    "scale",
    "#1E88E5",
    "kg",
    1,
    True,
    "示例行，可删除",
)


class DictionaryImportService:
    """封装导入批次的业务流程，返回统一响应结构。"""

    def __init__(
        self,
        executor: ImportExecutor = import_executor,
        replayer: UndoRedoService = undo_redo_service,
        stack_manager: UndoStackManager = undo_stack_manager,
    ) -> None:
        self._executor = executor
        self._replayer = replayer
        self._stack_manager = stack_manager

    # ------------------------------------------------------------------
    # 导入
    # ------------------------------------------------------------------

    def import_rows(
        self,
        db: Session,
        *,
        dictionary_code: str,
        mode: ImportMode,
        rows: Sequence[Mapping[str, Any]],
        skip_errors: bool,
        file_name: Optional[str],
        operator_id: Optional[int],
    ) -> Dict[str, Any]:
        normalized_code = self._normalize_dictionary_code(dictionary_code)
        if not rows:
            raise AppException("导入数据为空", HTTP_STATUS_BAD_REQUEST)
        limit = get_settings().import_max_rows
        if len(rows) > limit:
            raise ImportTooLargeError(len(rows), limit)

        with dictionary_lock(normalized_code):
            validated = validate_rows(db, dictionary_code=normalized_code, raw_rows=rows)
            batch = self._executor.execute(
                db,
                dictionary_code=normalized_code,
                mode=mode,
                rows=validated,
                skip_errors=skip_errors,
                file_name=(file_name or "").strip() or "api",
                operator_id=operator_id,
            )
            payload = self._serialize_batch(batch)
            payload["capabilities"] = self._stack_manager.get_capabilities(db, batch).to_dict()

        message = "导入完成" if batch.status == ImportStatus.COMPLETED.value else "导入失败，未写入任何数据"
        return create_response(message, payload, HTTP_STATUS_OK)

    def import_upload(
        self,
        db: Session,
        *,
        dictionary_code: str,
        mode: ImportMode,
        skip_errors: bool,
        file: UploadFile,
        operator_id: Optional[int],
    ) -> Dict[str, Any]:
        rows = self.parse_workbook(file.file.read())
        return self.import_rows(
            db,
            dictionary_code=dictionary_code,
            mode=mode,
            rows=rows,
            skip_errors=skip_errors,
            file_name=file.filename,
            operator_id=operator_id,
        )

    def validate_import(
        self,
        db: Session,
        *,
        dictionary_code: str,
        mode: ImportMode,
        rows: Sequence[Mapping[str, Any]],
    ) -> Dict[str, Any]:
        """预览校验结果：结构错误、批内重复、与目标模式冲突的行以及缺失翻译，不写入数据。"""
        normalized_code = self._normalize_dictionary_code(dictionary_code)
        mode = ImportMode(mode)
        validated = validate_rows(db, dictionary_code=normalized_code, raw_rows=rows)

        items = []
        valid_count = 0
        for result in validated:
            error = result.error
            action = None
            if error is None:
                exists = result.target_item_id is not None
                if mode is ImportMode.CREATE and exists:
                    error = format_row_error(RowErrorCode.CODE_ALREADY_EXISTS, result.code)
                elif mode is ImportMode.UPDATE and not exists:
                    error = format_row_error(RowErrorCode.CODE_NOT_FOUND, result.code)
                else:
                    action = "update" if exists else "create"
            if error is None:
                valid_count += 1
            items.append(
                {
                    "row": result.row_number,
                    "code": result.code,
                    "action": action,
                    "target_item_id": result.target_item_id,
                    "error": error,
                    "warnings": result.warnings,
                }
            )

        payload = {
            "dictionary_code": normalized_code,
            "import_mode": mode.value,
            "total": len(validated),
            "valid": valid_count,
            "invalid": len(validated) - valid_count,
            "warnings": sum(1 for result in validated if result.warnings),
            "rows": items,
        }
        return create_response("校验完成", payload, HTTP_STATUS_OK)

    def download_template(self) -> StreamingResponse:
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = "字典导入模板"
        sheet.append(list(IMPORT_COLUMNS))
        sheet.append(list(_TEMPLATE_SAMPLE))

        buffer = io.BytesIO()
        workbook.save(buffer)
        buffer.seek(0)
        response = StreamingResponse(buffer, media_type=_XLSX_MEDIA_TYPE)
        response.headers["Content-Disposition"] = "attachment; filename=dictionary-import-template.xlsx"
        return response

    def parse_workbook(self, content: bytes) -> List[Dict[str, Any]]:
        """读取首个工作表：首行为列名，空单元格视为未提供。"""
        if not content:
            raise AppException("导入文件不能为空", HTTP_STATUS_BAD_REQUEST)
        try:
            workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
            raise AppException("无法读取导入文件，请上传 .xlsx 格式", HTTP_STATUS_BAD_REQUEST) from exc

        try:
            sheet = workbook.active
            row_iter = sheet.iter_rows(values_only=True)
            try:
                header_cells = next(row_iter)
            except StopIteration as exc:
                raise AppException("导入模版不匹配，请下载最新模版", HTTP_STATUS_BAD_REQUEST) from exc

            headers = [str(cell).strip().lower() if cell is not None else None for cell in header_cells]
            if "code" not in headers or "name" not in headers:
                raise AppException("导入模版不匹配，请下载最新模版", HTTP_STATUS_BAD_REQUEST)

            rows: List[Dict[str, Any]] = []
            for cells in row_iter:
                if all(cell is None or (isinstance(cell, str) and not cell.strip()) for cell in cells):
                    continue
                record: Dict[str, Any] = {}
                for header, cell in zip(headers, cells):
                    if header in IMPORT_COLUMNS and cell is not None:
                        record[header] = cell
                rows.append(record)
            return rows
        finally:
            workbook.close()

    # ------------------------------------------------------------------
    # 撤销 / 重做
    # ------------------------------------------------------------------

    def undo_import(self, db: Session, *, batch_id: int, operator_id: Optional[int]) -> Dict[str, Any]:
        batch = self._get_batch(db, batch_id)
        with dictionary_lock(batch.dictionary_code):
            db.expire_all()
            result = self._replayer.undo(db, batch_id=batch_id, operator_id=operator_id)
            payload = self._serialize_replay(db, result)
        return self._replay_response(payload, result, "撤销导入成功", "撤销导入存在冲突")

    def redo_import(self, db: Session, *, batch_id: int, operator_id: Optional[int]) -> Dict[str, Any]:
        batch = self._get_batch(db, batch_id)
        with dictionary_lock(batch.dictionary_code):
            db.expire_all()
            result = self._replayer.redo(db, batch_id=batch_id, operator_id=operator_id)
            payload = self._serialize_replay(db, result)
        return self._replay_response(payload, result, "重做导入成功", "重做导入存在冲突")

    # ------------------------------------------------------------------
    # 历史查询
    # ------------------------------------------------------------------

    def list_history(
        self,
        db: Session,
        *,
        dictionary_code: str,
        statuses: Optional[Iterable[str]] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Dict[str, Any]:
        normalized_code = self._normalize_dictionary_code(dictionary_code)
        page = max(page, 1)
        page_size = max(page_size, 1)
        items, total = import_batch_crud.list_by_dictionary(
            db,
            dictionary_code=normalized_code,
            statuses=self._normalize_statuses(statuses),
            skip=(page - 1) * page_size,
            limit=page_size,
        )
        state = self._stack_manager.get_state(db, normalized_code)
        payload = {
            "total": total,
            "items": [
                self._serialize_batch(item)
                | {
                    "can_undo": state.undo_top_id == item.id,
                    "can_redo": state.redo_top_id == item.id,
                }
                for item in items
            ],
            "page": page,
            "page_size": page_size,
            "stack": state.to_dict(),
        }
        return create_response("获取导入历史成功", payload, HTTP_STATUS_OK)

    def get_batch_detail(self, db: Session, *, batch_id: int) -> Dict[str, Any]:
        batch = self._get_batch(db, batch_id)
        entries = change_journal_crud.list_for_batch(db, batch_id=batch.id)
        payload = self._serialize_batch(batch)
        payload["journal"] = [self._serialize_entry(entry) for entry in entries]
        payload["capabilities"] = self._stack_manager.get_capabilities(db, batch).to_dict()
        return create_response("获取导入批次详情成功", payload, HTTP_STATUS_OK)

    def get_batch_errors(self, db: Session, *, batch_id: int) -> Dict[str, Any]:
        batch = self._get_batch(db, batch_id)
        items = []
        for line in batch.error_log or []:
            matched = _ROW_ERROR_PATTERN.match(line)
            if matched:
                items.append(
                    {
                        "row": int(matched.group("row")),
                        "error_code": matched.group("code"),
                        "detail": matched.group("detail"),
                        "message": line,
                    }
                )
            else:
                items.append({"row": None, "error_code": None, "detail": None, "message": line})
        payload = {"batch_id": batch.id, "total": len(items), "items": items}
        return create_response("获取导入错误成功", payload, HTTP_STATUS_OK)

    def get_capabilities(self, db: Session, *, batch_id: int) -> Dict[str, Any]:
        batch = self._get_batch(db, batch_id)
        capabilities = self._stack_manager.get_capabilities(db, batch)
        return create_response("获取撤销/重做状态成功", capabilities.to_dict(), HTTP_STATUS_OK)

    def get_stack_state(self, db: Session, *, dictionary_code: str) -> Dict[str, Any]:
        state = self._stack_manager.get_state(db, self._normalize_dictionary_code(dictionary_code))
        return create_response("获取撤销/重做栈成功", state.to_dict(), HTTP_STATUS_OK)

    def delete_history(self, db: Session, *, batch_id: int) -> Dict[str, Any]:
        """删除导入历史（连同变更日志）；当前栈顶批次与未结束批次不可删除。"""
        batch = self._get_batch(db, batch_id)
        with dictionary_lock(batch.dictionary_code):
            db.refresh(batch)
            if batch.status in (ImportStatus.PENDING.value, ImportStatus.IN_PROGRESS.value):
                raise InvalidStateError(
                    "导入批次尚未结束，无法删除",
                    data={"batch_id": batch.id, "status": batch.status},
                )
            if self._stack_manager.is_pinned(db, batch):
                raise BatchPinnedError()
            dictionary_code = batch.dictionary_code
            import_batch_crud.hard_delete(db, batch)
        logger.info("Import batch %s of dictionary %s deleted from history", batch_id, dictionary_code)
        return create_response("删除导入历史成功", {"id": batch_id}, HTTP_STATUS_OK)

    # ------------------------------------------------------------------
    # 辅助方法
    # ------------------------------------------------------------------

    def _get_batch(self, db: Session, batch_id: int) -> ImportBatch:
        batch = import_batch_crud.get(db, batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch

    def _normalize_dictionary_code(self, dictionary_code: str) -> str:
        trimmed = (dictionary_code or "").strip()
        if not trimmed:
            raise AppException("字典编码不能为空", HTTP_STATUS_BAD_REQUEST)
        if not _DICTIONARY_CODE_PATTERN.fullmatch(trimmed):
            raise AppException("字典编码仅支持字母、数字、点、下划线与中划线", HTTP_STATUS_BAD_REQUEST)
        return trimmed

    def _normalize_statuses(self, statuses: Optional[Iterable[str]]) -> Optional[List[str]]:
        if not statuses:
            return None
        allowed = {status.value for status in ImportStatus}
        normalized = []
        for raw in statuses:
            value = (raw or "").strip().lower()
            if not value:
                continue
            if value not in allowed:
                raise AppException(f"批次状态不合法：{raw}", HTTP_STATUS_BAD_REQUEST)
            normalized.append(value)
        return normalized or None

    def _replay_response(
        self,
        payload: Dict[str, Any],
        result: ReplayResult,
        success_message: str,
        conflict_message: str,
    ) -> Dict[str, Any]:
        if result.has_conflicts:
            # 冲突报告已在服务内提交（或按 strict 策略回滚），此处仅以 409 返回
            raise AppException(conflict_message, HTTP_STATUS_CONFLICT, payload)
        return create_response(success_message, payload, HTTP_STATUS_OK)

    def _serialize_replay(self, db: Session, result: ReplayResult) -> Dict[str, Any]:
        return {
            "batch": self._serialize_batch(result.batch),
            "applied": result.applied,
            "already_applied": result.already_applied,
            "conflicts": [conflict.to_dict() for conflict in result.conflicts],
            "completed": result.completed,
            "discarded": result.discarded,
            "capabilities": self._stack_manager.get_capabilities(db, result.batch).to_dict(),
        }

    def _serialize_batch(self, batch: ImportBatch) -> Dict[str, Any]:
        return {
            "id": batch.id,
            "dictionary_code": batch.dictionary_code,
            "file_name": batch.file_name,
            "import_mode": batch.import_mode,
            "skip_errors": batch.skip_errors,
            "status": batch.status,
            "total_records": batch.total_records,
            "successful_records": batch.successful_records,
            "failed_records": batch.failed_records,
            "error_log": list(batch.error_log or []),
            "performed_by": batch.performed_by,
            "create_time": format_datetime(batch.create_time),
            "update_time": format_datetime(batch.update_time),
            "completed_at": format_datetime(batch.completed_at),
            "rolled_back_at": format_datetime(batch.rolled_back_at),
            "rolled_back_by": batch.rolled_back_by,
            "redone_at": format_datetime(batch.redone_at),
            "redone_by": batch.redone_by,
        }

    @staticmethod
    def _serialize_entry(entry: ChangeJournalEntry) -> Dict[str, Any]:
        return {
            "sequence_no": entry.sequence_no,
            "item_id": entry.item_id,
            "item_code": entry.item_code,
            "operation": entry.operation,
            "before_state": entry.before_state,
            "after_state": entry.after_state,
        }


dictionary_import_service = DictionaryImportService()
