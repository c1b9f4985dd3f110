"""字典项模型：按 ``dictionary_code`` 分组的多语言查找表行。"""

from typing import Any, Optional

from sqlalchemy import Boolean, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import expression

from app.packages.dictionary.models.base import Base, OperatorMixin, TimestampMixin

# 快照中参与“内容相等”比较的字段；id/version/时间戳属于簿记信息
CONTENT_FIELDS = (
    "name",
    "name_en",
    "name_ru",
    "name_uz",
    "description",
    "description_en",
    "description_ru",
    "description_uz",
    "icon",
    "color",
    "symbol",
    "sort_order",
    "is_active",
    "notes",
)

IDENTITY_FIELDS = ("id", "dictionary_code", "code")


class DictionaryItem(OperatorMixin, TimestampMixin, Base):
    """字典项。

    ``version`` 是乐观并发标记：每次写入由 SQLAlchemy 自动加一，UPDATE/DELETE
    语句会带上 ``WHERE version = :expected``，不匹配时抛出 ``StaleDataError``。
    """

    __tablename__ = "dictionary_items"
    __table_args__ = (
        UniqueConstraint("dictionary_code", "code", name="uq_dictionary_items_dictionary_code_code"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    dictionary_code: Mapped[str] = mapped_column(String(100), index=True)
    code: Mapped[str] = mapped_column(String(100))
    name: Mapped[str] = mapped_column(String(255))
    name_en: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    name_ru: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    name_uz: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    description_en: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    description_ru: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    description_uz: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    icon: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    color: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    symbol: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        server_default=expression.true(),
        nullable=False,
    )
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def snapshot(self) -> dict[str, Any]:
        """返回可 JSON 序列化的完整快照，用于变更日志的 before/after 状态。"""
        data: dict[str, Any] = {field: getattr(self, field) for field in IDENTITY_FIELDS}
        data.update({field: getattr(self, field) for field in CONTENT_FIELDS})
        data["version"] = self.version
        return data

    def content(self) -> dict[str, Any]:
        return {field: getattr(self, field) for field in CONTENT_FIELDS}

    def __repr__(self) -> str:
        return f"<DictionaryItem({self.dictionary_code}:{self.code} id={self.id} v={self.version})>"
