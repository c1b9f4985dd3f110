"""操作日志模型：记录导入、撤销、重做与手工编辑等变更接口的审计信息。"""

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.packages.dictionary.models.base import Base, TimestampMixin


class OperationLog(TimestampMixin, Base):
    """操作日志记录，覆盖接口调用的关键审计信息。"""

    __tablename__ = "operation_logs"
    __table_args__ = (
        CheckConstraint("status IN ('success', 'failure')", name="status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    log_number: Mapped[str] = mapped_column(String(40), unique=True, index=True)
    module: Mapped[str] = mapped_column(String(100))
    business_type: Mapped[str] = mapped_column(String(32), index=True)
    dictionary_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    operator_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    operator_ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    request_method: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    request_uri: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    class_method: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    request_params: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    response_params: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="success")
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cost_ms: Mapped[int] = mapped_column(Integer, default=0)
    operate_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
