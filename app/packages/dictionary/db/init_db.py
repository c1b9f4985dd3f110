"""Database bootstrapping utilities."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.packages.dictionary.core.enums import ImportStatus
from app.packages.dictionary.core.locks import close_lock_backend
from app.packages.dictionary.core.timezone import now
from app.packages.dictionary.crud.import_batch import import_batch_crud
from app.packages.dictionary.db import session as db_session
from app.packages.dictionary.models.base import Base
from app.packages.dictionary.models.operation_log import OperationLog  # noqa: F401 - ensure table creation in tests
from app.packages.dictionary.models.undo_stack import UndoRedoStack  # noqa: F401 - ensure table creation in tests

logger = logging.getLogger(__name__)

INTERRUPTED_BATCH_MESSAGE = "Fatal: import interrupted before completion (service restarted)"


def init_db() -> None:
    """Create all database tables if they do not exist and finalize interrupted imports."""
    Base.metadata.create_all(bind=db_session.engine)

    session = db_session.SessionLocal()
    try:
        recovered = recover_interrupted_batches(session)
        session.commit()
    except Exception:  # pragma: no cover - initialization failures should not crash gracefully
        session.rollback()
        logger.exception("Failed to recover interrupted import batches during database initialization")
        raise
    finally:
        session.close()

    if recovered:
        logger.warning("Marked %s interrupted import batch(es) as failed", recovered)


def recover_interrupted_batches(db: Session) -> int:
    """把崩溃时遗留的 pending/in_progress 批次终结为 failed。

    进程退出时未提交的行写入已随事务回滚，因此成功数按 0 计。
    """
    batches = import_batch_crud.list_unfinished(db)
    for batch in batches:
        batch.status = ImportStatus.FAILED.value
        batch.successful_records = 0
        batch.failed_records = batch.total_records
        batch.error_log = [*(batch.error_log or []), INTERRUPTED_BATCH_MESSAGE]
        batch.completed_at = now()
        db.add(batch)
    db.flush()
    return len(batches)


def shutdown() -> None:
    """Release pooled database connections and the dictionary lock backend."""
    close_lock_backend()
    db_session.engine.dispose()
