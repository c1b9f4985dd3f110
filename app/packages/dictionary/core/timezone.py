"""时区工具方法：统一批次时间戳、导出文件名与审计耗时的时间口径。"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from zoneinfo import ZoneInfo

from app.packages.dictionary.core.config import get_settings


def get_timezone() -> ZoneInfo:
    return get_settings().timezone_info


def now() -> datetime:
    """返回配置时区下的当前时间（带时区信息）。"""
    return datetime.now(get_timezone())


def to_local(value: Optional[datetime]) -> Optional[datetime]:
    """将 ``datetime`` 转换为配置时区；SQLite 读回的无时区时间按 UTC 处理。"""
    if value is None:
        return None
    tz = get_timezone()
    if value.tzinfo is None:
        value = value.replace(tzinfo=ZoneInfo("UTC"))
    return value.astimezone(tz)


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """将时间格式化为 ``YYYY-MM-DD HH:MM:SS`` 字符串。"""
    localized = to_local(value)
    if localized is None:
        return None
    return localized.strftime("%Y-%m-%d %H:%M:%S")


def file_stamp() -> str:
    """导出文件名使用的紧凑时间戳。"""
    return now().strftime("%Y%m%d%H%M%S")


def elapsed_ms(started_at: datetime) -> int:
    return max(int((now() - started_at).total_seconds() * 1000), 0)
