"""撤销/重做栈管理：维护每个字典的 ``(undo_top, redo_top)`` 指针并通知订阅者。

指针持久化在 ``import_undo_stacks`` 表中，所有修改都在调用方的事务内进行并锁定该行；
调用方提交事务后再调用 :meth:`UndoStackManager.notify`，订阅者只会看到已提交的状态。
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from app.packages.dictionary.core.logger import logger
from app.packages.dictionary.crud.import_batch import import_batch_crud
from app.packages.dictionary.crud.undo_stack import undo_stack_crud
from app.packages.dictionary.models.import_batch import ImportBatch
from app.packages.dictionary.models.undo_stack import UndoRedoStack


@dataclass(frozen=True)
class StackState:
    dictionary_code: str
    undo_top_id: Optional[int]
    redo_top_id: Optional[int]

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Capabilities:
    batch_id: int
    can_undo: bool
    can_redo: bool

    def to_dict(self) -> dict:
        return asdict(self)


StackListener = Callable[[StackState], None]


def _state_of(stack: UndoRedoStack) -> StackState:
    return StackState(
        dictionary_code=stack.dictionary_code,
        undo_top_id=stack.undo_top_id,
        redo_top_id=stack.redo_top_id,
    )


class UndoStackManager:
    """按字典维护撤销/重做栈顶。"""

    def __init__(self) -> None:
        self._listeners: List[StackListener] = []
        self._listeners_guard = threading.Lock()

    # ------------------------------------------------------------------
    # 指针变更（在调用方事务内执行）
    # ------------------------------------------------------------------

    def push(self, db: Session, batch: ImportBatch) -> StackState:
        """新导入成功：成为撤销栈顶，并使该字典的重做历史失效。"""
        stack = undo_stack_crud.get_for_update(db, dictionary_code=batch.dictionary_code)
        stack.undo_top_id = batch.id
        stack.redo_top_id = None
        db.flush()
        return _state_of(stack)

    def mark_undone(self, db: Session, batch: ImportBatch) -> StackState:
        stack = undo_stack_crud.get_for_update(db, dictionary_code=batch.dictionary_code)
        previous = import_batch_crud.previous_completed(
            db,
            dictionary_code=batch.dictionary_code,
            before_id=batch.id,
        )
        stack.undo_top_id = previous.id if previous is not None else None
        stack.redo_top_id = batch.id
        db.flush()
        return _state_of(stack)

    def mark_redone(self, db: Session, batch: ImportBatch) -> StackState:
        stack = undo_stack_crud.get_for_update(db, dictionary_code=batch.dictionary_code)
        stack.undo_top_id = batch.id
        stack.redo_top_id = None
        db.flush()
        return _state_of(stack)

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def get_state(self, db: Session, dictionary_code: str) -> StackState:
        stack = undo_stack_crud.get_by_dictionary(db, dictionary_code=dictionary_code)
        if stack is None:
            return StackState(dictionary_code=dictionary_code, undo_top_id=None, redo_top_id=None)
        return _state_of(stack)

    def get_capabilities(self, db: Session, batch: ImportBatch) -> Capabilities:
        state = self.get_state(db, batch.dictionary_code)
        return Capabilities(
            batch_id=batch.id,
            can_undo=state.undo_top_id == batch.id,
            can_redo=state.redo_top_id == batch.id,
        )

    def is_pinned(self, db: Session, batch: ImportBatch) -> bool:
        state = self.get_state(db, batch.dictionary_code)
        return batch.id in (state.undo_top_id, state.redo_top_id)

    # ------------------------------------------------------------------
    # 订阅
    # ------------------------------------------------------------------

    def subscribe(self, listener: StackListener) -> Callable[[], None]:
        """注册栈状态监听器，返回取消订阅函数。"""
        with self._listeners_guard:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._listeners_guard:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def notify(self, state: StackState) -> None:
        with self._listeners_guard:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(state)
            except Exception:
                logger.exception("Undo stack listener failed for dictionary %s", state.dictionary_code)


undo_stack_manager = UndoStackManager()
