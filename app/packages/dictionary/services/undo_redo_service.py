"""撤销与重做：按变更日志倒序/正序回放批次对字典项的修改。

一致性检查规则：

- 撤销要求字典项仍处于批次写入后的状态，即版本号等于 ``after_state`` 的版本，
  或内容字段与 ``after_state`` 相同；
- 重做要求字典项仍处于撤销留下的状态，即 ``created`` 条目对应的字典项不存在，
  ``updated`` 条目对应的字典项内容与 ``before_state`` 相同；
- 字典项已经处于目标状态时按“已回放”计数，冲突处理后的重试因此可以收敛。

每个条目在独立保存点内执行；冲突只影响当前条目。``UNDO_CONFLICT_POLICY=strict``
时任一冲突都会放弃本次全部修改。
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Callable, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.packages.dictionary.core.config import get_settings
from app.packages.dictionary.core.enums import ImportStatus, JournalOperation
from app.packages.dictionary.core.exceptions import (
    BatchNotFoundError,
    ConflictError,
    InvalidStateError,
    NotTopOfStackError,
    StorageError,
)
from app.packages.dictionary.core.logger import logger
from app.packages.dictionary.core.timezone import now
from app.packages.dictionary.crud.dictionary import dictionary_item_crud
from app.packages.dictionary.crud.import_batch import change_journal_crud, import_batch_crud
from app.packages.dictionary.crud.undo_stack import undo_stack_crud
from app.packages.dictionary.models.dictionary import CONTENT_FIELDS, DictionaryItem
from app.packages.dictionary.models.import_batch import ChangeJournalEntry, ImportBatch
from app.packages.dictionary.services.undo_stack_manager import (
    StackState,
    UndoStackManager,
    undo_stack_manager,
)


class _Outcome(enum.Enum):
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"


@dataclass
class ConflictRecord:
    sequence_no: int
    item_id: int
    item_code: str
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "sequence_no": self.sequence_no,
            "item_id": self.item_id,
            "item_code": self.item_code,
            "reason": self.reason,
        }


@dataclass
class ReplayResult:
    """一次撤销或重做的结果报告。"""

    batch: ImportBatch
    applied: int = 0
    already_applied: int = 0
    conflicts: List[ConflictRecord] = field(default_factory=list)
    completed: bool = False
    discarded: bool = False
    stack: Optional[StackState] = None

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


class UndoResult(ReplayResult):
    pass


class RedoResult(ReplayResult):
    pass


def _content_of(snapshot: Mapping[str, Any]) -> dict[str, Any]:
    return {name: snapshot.get(name) for name in CONTENT_FIELDS}


def _same_content(item: DictionaryItem, snapshot: Mapping[str, Any]) -> bool:
    return item.content() == _content_of(snapshot)


def _matches(item: DictionaryItem, snapshot: Mapping[str, Any]) -> bool:
    return item.version == snapshot.get("version") or _same_content(item, snapshot)


class UndoRedoService:
    def __init__(self, stack_manager: UndoStackManager = undo_stack_manager) -> None:
        self._stack_manager = stack_manager

    # ------------------------------------------------------------------
    # 对外操作
    # ------------------------------------------------------------------

    def undo(self, db: Session, *, batch_id: int, operator_id: Optional[int]) -> UndoResult:
        batch = self._load_batch(db, batch_id)
        if batch.status != ImportStatus.COMPLETED.value:
            raise InvalidStateError(
                f"只有已完成的导入批次可以撤销，当前状态：{batch.status}",
                data={"batch_id": batch.id, "status": batch.status},
            )
        stack = undo_stack_crud.get_for_update(db, dictionary_code=batch.dictionary_code)
        if stack.undo_top_id != batch.id:
            raise NotTopOfStackError(
                "只能撤销该字典最近一次导入的批次",
                data={"batch_id": batch.id, "undo_top_id": stack.undo_top_id},
            )

        result = UndoResult(batch=batch)
        entries = change_journal_crud.list_for_batch(db, batch_id=batch.id, reverse=True)

        def _finish(target: ImportBatch) -> StackState:
            target.status = ImportStatus.ROLLED_BACK.value
            target.rolled_back_at = now()
            target.rolled_back_by = operator_id
            return self._stack_manager.mark_undone(db, target)

        return self._replay(
            db,
            batch=batch,
            entries=entries,
            step=self._undo_entry,
            operator_id=operator_id,
            result=result,
            finish=_finish,
            action="undo",
        )

    def redo(self, db: Session, *, batch_id: int, operator_id: Optional[int]) -> RedoResult:
        batch = self._load_batch(db, batch_id)
        if batch.status != ImportStatus.ROLLED_BACK.value:
            raise InvalidStateError(
                f"只有已撤销的导入批次可以重做，当前状态：{batch.status}",
                data={"batch_id": batch.id, "status": batch.status},
            )
        stack = undo_stack_crud.get_for_update(db, dictionary_code=batch.dictionary_code)
        if stack.redo_top_id != batch.id:
            raise NotTopOfStackError(
                "只能重做该字典最近一次撤销的批次",
                data={"batch_id": batch.id, "redo_top_id": stack.redo_top_id},
            )

        result = RedoResult(batch=batch)
        entries = change_journal_crud.list_for_batch(db, batch_id=batch.id)

        def _finish(target: ImportBatch) -> StackState:
            target.status = ImportStatus.COMPLETED.value
            target.redone_at = now()
            target.redone_by = operator_id
            target.rolled_back_at = None
            target.rolled_back_by = None
            return self._stack_manager.mark_redone(db, target)

        return self._replay(
            db,
            batch=batch,
            entries=entries,
            step=self._redo_entry,
            operator_id=operator_id,
            result=result,
            finish=_finish,
            action="redo",
        )

    # ------------------------------------------------------------------
    # 回放
    # ------------------------------------------------------------------

    def _replay(
        self,
        db: Session,
        *,
        batch: ImportBatch,
        entries: List[ChangeJournalEntry],
        step: Callable[[Session, ChangeJournalEntry, Optional[int]], _Outcome],
        operator_id: Optional[int],
        result: ReplayResult,
        finish: Callable[[ImportBatch], StackState],
        action: str,
    ) -> ReplayResult:
        batch_id = batch.id
        dictionary_code = batch.dictionary_code
        try:
            for entry in entries:
                sequence_no, item_id, item_code = entry.sequence_no, entry.item_id, entry.item_code
                try:
                    with db.begin_nested():
                        outcome = step(db, entry, operator_id)
                except ConflictError as exc:
                    result.conflicts.append(
                        ConflictRecord(
                            sequence_no=sequence_no,
                            item_id=item_id,
                            item_code=item_code,
                            reason=exc.msg,
                        )
                    )
                    continue
                if outcome is _Outcome.ALREADY_APPLIED:
                    result.already_applied += 1
                else:
                    result.applied += 1

            if result.conflicts:
                if get_settings().strict_undo_conflicts:
                    db.rollback()
                    result.discarded = True
                else:
                    db.commit()
                logger.warning(
                    "%s of batch %s (dictionary %s) hit %s conflict(s); applied=%s discarded=%s",
                    action.capitalize(),
                    batch_id,
                    dictionary_code,
                    len(result.conflicts),
                    result.applied,
                    result.discarded,
                )
                return result

            state = finish(batch)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("%s of batch %s failed with a storage error", action.capitalize(), batch_id)
            raise StorageError(
                f"撤销/重做过程中发生存储故障：{getattr(exc, 'orig', None) or exc}",
                data={"batch_id": batch_id},
            ) from exc

        result.completed = True
        result.stack = state
        self._stack_manager.notify(state)
        logger.info(
            "%s of batch %s (dictionary %s) completed: applied=%s already_applied=%s",
            action.capitalize(),
            batch_id,
            dictionary_code,
            result.applied,
            result.already_applied,
        )
        return result

    def _undo_entry(self, db: Session, entry: ChangeJournalEntry, operator_id: Optional[int]) -> _Outcome:
        item = dictionary_item_crud.get(db, entry.item_id)
        after = entry.after_state

        if entry.operation == JournalOperation.CREATED.value:
            if item is None:
                return _Outcome.ALREADY_APPLIED
            if not _matches(item, after):
                raise ConflictError(f"字典项 {entry.item_code} 在导入后被修改，无法删除", item_id=entry.item_id)
            dictionary_item_crud.delete_with_version(db, item, expected_version=item.version)
            return _Outcome.APPLIED

        before = entry.before_state or {}
        if item is None:
            raise ConflictError(f"字典项 {entry.item_code} 已被删除，无法恢复", item_id=entry.item_id)
        if _matches(item, after):
            dictionary_item_crud.update_with_version(
                db,
                item,
                expected_version=item.version,
                values=_content_of(before),
                operator_id=operator_id,
            )
            return _Outcome.APPLIED
        if _same_content(item, before):
            return _Outcome.ALREADY_APPLIED
        raise ConflictError(f"字典项 {entry.item_code} 在导入后被修改，无法恢复", item_id=entry.item_id)

    def _redo_entry(self, db: Session, entry: ChangeJournalEntry, operator_id: Optional[int]) -> _Outcome:
        item = dictionary_item_crud.get(db, entry.item_id)
        after = entry.after_state

        if entry.operation == JournalOperation.CREATED.value:
            if item is not None:
                if _same_content(item, after):
                    return _Outcome.ALREADY_APPLIED
                raise ConflictError(f"字典项 {entry.item_code} 已存在且内容不同", item_id=entry.item_id)
            dictionary_item_crud.insert(
                db,
                dictionary_code=after["dictionary_code"],
                code=after["code"],
                values=_content_of(after),
                operator_id=operator_id,
                item_id=entry.item_id,
            )
            return _Outcome.APPLIED

        before = entry.before_state or {}
        if item is None:
            raise ConflictError(f"字典项 {entry.item_code} 已被删除，无法重做", item_id=entry.item_id)
        if _same_content(item, before):
            dictionary_item_crud.update_with_version(
                db,
                item,
                expected_version=item.version,
                values=_content_of(after),
                operator_id=operator_id,
            )
            return _Outcome.APPLIED
        if _same_content(item, after):
            return _Outcome.ALREADY_APPLIED
        raise ConflictError(f"字典项 {entry.item_code} 在撤销后被修改，无法重做", item_id=entry.item_id)

    def _load_batch(self, db: Session, batch_id: int) -> ImportBatch:
        batch = import_batch_crud.get(db, batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch


undo_redo_service = UndoRedoService()
