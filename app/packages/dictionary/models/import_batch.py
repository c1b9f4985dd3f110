"""导入批次与变更日志模型。

一个 ``ImportBatch`` 独占一组按 ``sequence_no`` 排序的 ``ChangeJournalEntry``：
撤销时倒序回放，重做时正序回放。日志条目在批次终结后不再修改。
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.packages.dictionary.core.enums import ImportStatus
from app.packages.dictionary.models.base import Base, TimestampMixin


class ImportBatch(TimestampMixin, Base):
    """一次批量导入尝试的元数据、计数与行级错误日志。"""

    __tablename__ = "import_batches"
    __table_args__ = (
        CheckConstraint("import_mode IN ('create', 'update', 'upsert')", name="mode"),
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed', 'failed', 'rolled_back')",
            name="status",
        ),
        Index("ix_import_batches_dictionary_status", "dictionary_code", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    dictionary_code: Mapped[str] = mapped_column(String(100), index=True)
    file_name: Mapped[str] = mapped_column(String(255))
    import_mode: Mapped[str] = mapped_column(String(16))
    skip_errors: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    total_records: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    successful_records: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_records: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default=ImportStatus.PENDING.value, nullable=False)
    error_log: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    performed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rolled_back_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rolled_back_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    redone_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    redone_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    journal_entries: Mapped[List["ChangeJournalEntry"]] = relationship(
        "ChangeJournalEntry",
        back_populates="batch",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ChangeJournalEntry.sequence_no",
    )

    @property
    def counts_balanced(self) -> bool:
        return self.successful_records + self.failed_records == self.total_records

    def __repr__(self) -> str:
        return f"<ImportBatch(id={self.id}, dictionary={self.dictionary_code}, status={self.status})>"


class ChangeJournalEntry(Base):
    """批次对单个字典项执行的一次可逆变更。"""

    __tablename__ = "import_change_journal"
    __table_args__ = (
        CheckConstraint("operation IN ('created', 'updated')", name="operation"),
        Index("ix_import_change_journal_item", "item_id"),
    )

    batch_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("import_batches.id", ondelete="CASCADE"),
        primary_key=True,
    )
    sequence_no: Mapped[int] = mapped_column(Integer, primary_key=True)
    item_id: Mapped[int] = mapped_column(Integer, nullable=False)
    item_code: Mapped[str] = mapped_column(String(100), nullable=False)
    operation: Mapped[str] = mapped_column(String(16), nullable=False)
    before_state: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    after_state: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    create_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    batch: Mapped[ImportBatch] = relationship("ImportBatch", back_populates="journal_entries")
