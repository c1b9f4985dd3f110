"""依赖注入模块：封装 FastAPI 中复用度高的依赖函数。"""

from collections.abc import Generator
from typing import Optional

from fastapi import Header
from sqlalchemy.orm import Session

from app.packages.dictionary.core.config import get_settings
from app.packages.dictionary.core.constants import HTTP_STATUS_BAD_REQUEST, OPERATOR_HEADER
from app.packages.dictionary.core.exceptions import AppException
from app.packages.dictionary.db import session as db_session


def get_db() -> Generator[Session, None, None]:
    """生成一个数据库会话，并在请求结束后自动关闭。"""
    db = db_session.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_operator_id(
    operator_header: Optional[str] = Header(default=None, alias=OPERATOR_HEADER),
) -> int:
    """从请求头读取操作人 ID，缺省时使用 ``DEFAULT_OPERATOR_ID``。"""
    if operator_header is None or not operator_header.strip():
        return get_settings().default_operator_id
    try:
        operator_id = int(operator_header.strip())
    except ValueError as exc:
        raise AppException(f"{OPERATOR_HEADER} 必须为整数", HTTP_STATUS_BAD_REQUEST) from exc
    if operator_id <= 0:
        raise AppException(f"{OPERATOR_HEADER} 必须为正整数", HTTP_STATUS_BAD_REQUEST)
    return operator_id
