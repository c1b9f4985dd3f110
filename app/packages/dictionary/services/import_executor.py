"""导入执行器：在一种导入模式下把校验后的行写入字典，并生成批次与变更日志。

事务结构::

    提交 batch(pending → in_progress)
    SAVEPOINT outer
        SAVEPOINT row_1 ... RELEASE / ROLLBACK TO
        SAVEPOINT row_n ...
    严格模式有失败行 → ROLLBACK TO outer，否则 RELEASE outer
    写入批次终态 + 入栈，一次提交

每一行的目标解析、字典项写入与日志追加都在该行自己的保存点内完成，
单行失败不会留下部分写入。
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, SessionTransaction

from app.packages.dictionary.core.config import get_settings
from app.packages.dictionary.core.enums import ImportMode, ImportStatus, JournalOperation, RowErrorCode
from app.packages.dictionary.core.exceptions import (
    ConflictError,
    ImportStorageError,
    ImportTimeoutError,
    ImportTooLargeError,
)
from app.packages.dictionary.core.logger import logger
from app.packages.dictionary.core.timezone import now
from app.packages.dictionary.crud.dictionary import dictionary_item_crud
from app.packages.dictionary.crud.import_batch import change_journal_crud, import_batch_crud
from app.packages.dictionary.models.dictionary import DictionaryItem
from app.packages.dictionary.models.import_batch import ImportBatch
from app.packages.dictionary.services.row_validator import ValidatedRow, format_row_error
from app.packages.dictionary.services.undo_stack_manager import UndoStackManager, undo_stack_manager

Resolution = Union[JournalOperation, RowErrorCode]


def _resolve_create(existing: Optional[DictionaryItem]) -> Resolution:
    if existing is not None:
        return RowErrorCode.CODE_ALREADY_EXISTS
    return JournalOperation.CREATED


def _resolve_update(existing: Optional[DictionaryItem]) -> Resolution:
    if existing is None:
        return RowErrorCode.CODE_NOT_FOUND
    return JournalOperation.UPDATED


def _resolve_upsert(existing: Optional[DictionaryItem]) -> Resolution:
    if existing is None:
        return JournalOperation.CREATED
    return JournalOperation.UPDATED


RESOLVERS: Dict[ImportMode, Callable[[Optional[DictionaryItem]], Resolution]] = {
    ImportMode.CREATE: _resolve_create,
    ImportMode.UPDATE: _resolve_update,
    ImportMode.UPSERT: _resolve_upsert,
}

_unresolved_modes = set(ImportMode) - set(RESOLVERS)
if _unresolved_modes:
    raise RuntimeError(f"Import modes without resolver: {sorted(mode.value for mode in _unresolved_modes)}")


def format_row_line(row_number: int, error: str) -> str:
    return f"Row {row_number}: {error}"


@dataclass
class _Progress:
    successful: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def fail(self, row_number: int, error: str) -> None:
        self.failed += 1
        self.errors.append(format_row_line(row_number, error))


class ImportExecutor:
    """执行一次批量导入，返回终态的 ``ImportBatch``。

    调用方负责持有字典级互斥锁；执行器只管理事务与批次生命周期。
    """

    def __init__(self, stack_manager: UndoStackManager = undo_stack_manager) -> None:
        self._stack_manager = stack_manager

    def execute(
        self,
        db: Session,
        *,
        dictionary_code: str,
        mode: ImportMode,
        rows: Sequence[ValidatedRow],
        skip_errors: bool,
        file_name: str,
        operator_id: Optional[int],
    ) -> ImportBatch:
        settings = get_settings()
        mode = ImportMode(mode)
        total = len(rows)
        if total > settings.import_max_rows:
            raise ImportTooLargeError(total, settings.import_max_rows)

        batch = self._open_batch(
            db,
            dictionary_code=dictionary_code,
            mode=mode,
            total=total,
            skip_errors=skip_errors,
            file_name=file_name,
            operator_id=operator_id,
        )
        batch_id = batch.id
        logger.info(
            "Import batch %s started: dictionary=%s mode=%s rows=%s skip_errors=%s",
            batch_id,
            dictionary_code,
            mode.value,
            total,
            skip_errors,
        )

        deadline = time.monotonic() + settings.import_timeout_seconds
        progress = _Progress()
        outer = db.begin_nested()
        try:
            for validated in rows:
                if time.monotonic() >= deadline:
                    raise ImportTimeoutError(f"导入超时（超过 {settings.import_timeout_seconds} 秒）")
                self._apply_row(
                    db,
                    batch_id=batch_id,
                    dictionary_code=dictionary_code,
                    mode=mode,
                    validated=validated,
                    operator_id=operator_id,
                    progress=progress,
                )
        except (SQLAlchemyError, ImportTimeoutError) as exc:
            self._finalize_fault(
                db,
                batch_id=batch_id,
                outer=outer,
                skip_errors=skip_errors,
                progress=progress,
                exc=exc,
            )

        discard = progress.failed > 0 and not skip_errors
        state = None
        try:
            if discard:
                outer.rollback()
            else:
                outer.commit()

            batch = import_batch_crud.get(db, batch_id)
            batch.error_log = list(progress.errors)
            batch.completed_at = now()
            if discard:
                batch.status = ImportStatus.FAILED.value
                batch.successful_records = 0
                batch.failed_records = total
            else:
                batch.status = ImportStatus.COMPLETED.value
                batch.successful_records = progress.successful
                batch.failed_records = progress.failed
                state = self._stack_manager.push(db, batch)
            db.commit()
        except SQLAlchemyError as exc:
            # 终结阶段的故障：此前的行写入随事务一起回滚
            progress.successful = 0
            self._finalize_fault(
                db,
                batch_id=batch_id,
                outer=None,
                skip_errors=False,
                progress=progress,
                exc=exc,
            )

        if state is not None:
            self._stack_manager.notify(state)

        logger.info(
            "Import batch %s finished: status=%s successful=%s failed=%s",
            batch_id,
            batch.status,
            batch.successful_records,
            batch.failed_records,
        )
        return batch

    # ------------------------------------------------------------------
    # 内部步骤
    # ------------------------------------------------------------------

    def _open_batch(
        self,
        db: Session,
        *,
        dictionary_code: str,
        mode: ImportMode,
        total: int,
        skip_errors: bool,
        file_name: str,
        operator_id: Optional[int],
    ) -> ImportBatch:
        batch = import_batch_crud.create(
            db,
            {
                "dictionary_code": dictionary_code,
                "file_name": file_name,
                "import_mode": mode.value,
                "skip_errors": skip_errors,
                "total_records": total,
                "successful_records": 0,
                "failed_records": 0,
                "status": ImportStatus.PENDING.value,
                "error_log": [],
                "performed_by": operator_id,
            },
        )
        batch.status = ImportStatus.IN_PROGRESS.value
        return import_batch_crud.save(db, batch)

    def _apply_row(
        self,
        db: Session,
        *,
        batch_id: int,
        dictionary_code: str,
        mode: ImportMode,
        validated: ValidatedRow,
        operator_id: Optional[int],
        progress: _Progress,
    ) -> None:
        if validated.error is not None or validated.row is None:
            progress.fail(validated.row_number, validated.error or format_row_error(RowErrorCode.INVALID_ROW, None))
            return

        row = validated.row
        resolution: Optional[Resolution] = None
        try:
            with db.begin_nested():
                existing = dictionary_item_crud.get_by_code(db, dictionary_code=dictionary_code, code=row.code)
                resolution = RESOLVERS[mode](existing)
                if isinstance(resolution, RowErrorCode):
                    progress.fail(validated.row_number, format_row_error(resolution, row.code))
                    return

                if resolution is JournalOperation.CREATED:
                    item = dictionary_item_crud.insert(
                        db,
                        dictionary_code=dictionary_code,
                        code=row.code,
                        values=row.values(),
                        operator_id=operator_id,
                    )
                    before_state = None
                else:
                    before_state = existing.snapshot()
                    item = dictionary_item_crud.update_with_version(
                        db,
                        existing,
                        expected_version=existing.version,
                        values=row.values(),
                        operator_id=operator_id,
                    )

                change_journal_crud.append(
                    db,
                    batch_id=batch_id,
                    sequence_no=validated.row_number,
                    operation=resolution,
                    before_state=before_state,
                    after_state=item.snapshot(),
                )
        except ConflictError:
            error_code = (
                RowErrorCode.CODE_ALREADY_EXISTS
                if resolution is JournalOperation.CREATED
                else RowErrorCode.VERSION_CONFLICT
            )
            progress.fail(validated.row_number, format_row_error(error_code, row.code))
            return

        progress.successful += 1

    def _finalize_fault(
        self,
        db: Session,
        *,
        batch_id: int,
        outer: Optional[SessionTransaction],
        skip_errors: bool,
        progress: _Progress,
        exc: Exception,
    ) -> None:
        """存储故障或超时：按模式保留或丢弃已写入的行，批次终结为 failed 后抛出。"""
        reason = str(getattr(exc, "orig", None) or exc)
        logger.error("Import batch %s aborted: %s", batch_id, reason)

        kept = 0
        try:
            if outer is None:
                db.rollback()
            elif outer.is_active:
                if skip_errors and progress.successful:
                    outer.commit()
                    kept = progress.successful
                else:
                    outer.rollback()
        except SQLAlchemyError:
            logger.exception("Import batch %s could not settle rows written before the fault", batch_id)
            db.rollback()
            kept = 0

        try:
            batch = import_batch_crud.get(db, batch_id)
            batch.status = ImportStatus.FAILED.value
            batch.successful_records = kept
            batch.failed_records = batch.total_records - kept
            batch.error_log = [*progress.errors, f"Fatal: {reason}"]
            batch.completed_at = now()
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Import batch %s left unfinished; startup recovery will mark it failed", batch_id)

        raise ImportStorageError(f"导入过程中发生存储故障：{reason}", batch_id=batch_id) from exc


import_executor = ImportExecutor()
