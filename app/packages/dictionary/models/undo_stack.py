"""撤销/重做栈指针：每个字典一行，持久化在数据库中以便多实例共享。"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.packages.dictionary.models.base import Base


class UndoRedoStack(Base):
    """``undo_top_id`` 为最近一次已应用且未撤销的批次，``redo_top_id`` 为最近一次被撤销的批次。"""

    __tablename__ = "import_undo_stacks"

    dictionary_code: Mapped[str] = mapped_column(String(100), primary_key=True)
    undo_top_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("import_batches.id", ondelete="SET NULL"),
        nullable=True,
    )
    redo_top_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("import_batches.id", ondelete="SET NULL"),
        nullable=True,
    )
    update_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
