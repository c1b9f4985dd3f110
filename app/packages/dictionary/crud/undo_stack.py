"""撤销/重做栈指针的数据访问。"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.packages.dictionary.crud.base import CRUDBase
from app.packages.dictionary.models.undo_stack import UndoRedoStack


class UndoStackCRUD(CRUDBase[UndoRedoStack]):
    def get_by_dictionary(self, db: Session, *, dictionary_code: str) -> Optional[UndoRedoStack]:
        return db.get(self.model, dictionary_code)

    def get_for_update(self, db: Session, *, dictionary_code: str) -> UndoRedoStack:
        """锁定并返回字典的栈指针行，不存在时创建空栈。

        在支持行锁的数据库上使用 ``SELECT ... FOR UPDATE``，SQLite 会忽略该子句。
        """
        stack = (
            self.query(db)
            .filter(self.model.dictionary_code == dictionary_code)
            .with_for_update()
            .first()
        )
        if stack is not None:
            return stack

        stack = self.model(dictionary_code=dictionary_code, undo_top_id=None, redo_top_id=None)
        try:
            with db.begin_nested():
                db.add(stack)
        except IntegrityError:
            # 另一个事务刚刚创建了同一行
            stack = (
                self.query(db)
                .filter(self.model.dictionary_code == dictionary_code)
                .with_for_update()
                .one()
            )
        return stack


undo_stack_crud = UndoStackCRUD(UndoRedoStack)

