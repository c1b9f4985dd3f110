"""导入批次与变更日志的数据访问。"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.packages.dictionary.core.enums import ImportStatus, JournalOperation
from app.packages.dictionary.crud.base import CRUDBase
from app.packages.dictionary.models.import_batch import ChangeJournalEntry, ImportBatch


class ImportBatchCRUD(CRUDBase[ImportBatch]):
    """批次查询：历史列表、撤销栈回退时寻找上一个已完成批次、启动时的中断恢复。"""

    def list_by_dictionary(
        self,
        db: Session,
        *,
        dictionary_code: str,
        statuses: Optional[Iterable[str]] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[ImportBatch], int]:
        query = self.query(db).filter(self.model.dictionary_code == dictionary_code)
        if statuses:
            query = query.filter(self.model.status.in_(set(statuses)))

        total = query.count()
        items = (
            query.order_by(self.model.id.desc())
            .offset(max(skip, 0))
            .limit(max(limit, 1))
            .all()
        )
        return items, total

    def previous_completed(self, db: Session, *, dictionary_code: str, before_id: int) -> Optional[ImportBatch]:
        """返回同一字典中 ID 小于 ``before_id`` 的最新已完成批次。"""
        return (
            self.query(db)
            .filter(
                self.model.dictionary_code == dictionary_code,
                self.model.status == ImportStatus.COMPLETED.value,
                self.model.id < before_id,
            )
            .order_by(self.model.id.desc())
            .first()
        )

    def list_unfinished(self, db: Session) -> List[ImportBatch]:
        return (
            self.query(db)
            .filter(
                self.model.status.in_(
                    (ImportStatus.PENDING.value, ImportStatus.IN_PROGRESS.value),
                )
            )
            .order_by(self.model.id.asc())
            .all()
        )


class ChangeJournalCRUD(CRUDBase[ChangeJournalEntry]):
    """变更日志只追加：条目写入后不再修改，随批次一起级联删除。"""

    def append(
        self,
        db: Session,
        *,
        batch_id: int,
        sequence_no: int,
        operation: JournalOperation,
        before_state: Optional[dict[str, Any]],
        after_state: dict[str, Any],
    ) -> ChangeJournalEntry:
        entry = self.model(
            batch_id=batch_id,
            sequence_no=sequence_no,
            item_id=after_state["id"],
            item_code=after_state["code"],
            operation=operation.value,
            before_state=before_state,
            after_state=after_state,
        )
        db.add(entry)
        db.flush()
        return entry

    def list_for_batch(self, db: Session, *, batch_id: int, reverse: bool = False) -> List[ChangeJournalEntry]:
        order = self.model.sequence_no.desc() if reverse else self.model.sequence_no.asc()
        return self.query(db).filter(self.model.batch_id == batch_id).order_by(order).all()

    def count_for_batch(self, db: Session, *, batch_id: int) -> int:
        return self.query(db).filter(self.model.batch_id == batch_id).count()


import_batch_crud = ImportBatchCRUD(ImportBatch)
change_journal_crud = ChangeJournalCRUD(ChangeJournalEntry)

