"""配置模块：负责加载和缓存基于环境变量的应用设置。

加载顺序（后者覆盖前者）：项目根目录的 ``.env``、``.env.<ENVIRONMENT>``、真实环境变量。
设置 ``ENV_FILE`` 时只加载该文件。
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# app/packages/dictionary/core/config.py → 项目根目录
BASE_DIR = Path(__file__).resolve().parents[4]


def _env_files() -> List[Path]:
    override = os.getenv("ENV_FILE")
    if override:
        return [BASE_DIR / override]

    files = [BASE_DIR / ".env"]
    environment = (os.getenv("ENVIRONMENT") or "").strip()
    if environment:
        name = environment if environment.startswith(".env") else f".env.{environment}"
        files.append(BASE_DIR / name)
    return files


def _load_environment() -> None:
    # 已存在的进程环境变量优先级最高，不会被文件覆盖
    protected = dict(os.environ)
    for env_file in _env_files():
        if env_file.is_file():
            load_dotenv(env_file, override=True, encoding="utf-8")
    os.environ.update(protected)


_load_environment()


class Settings(BaseSettings):
    """
    封装字典导入服务运行所需的所有配置项，每个字段都可以通过环境变量重写。
    导入、撤销/重做与分布式锁相关的参数也集中在这里，避免在业务代码中散落魔法数字。
    """

    project_name: str = Field(default="Dictionary Import Service", alias="PROJECT_NAME")
    api_v1_str: str = Field(default="/api/v1", alias="API_V1_STR")
    debug: bool = Field(default=False, alias="DEBUG")

    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")
    database_host: str = Field(default="localhost", alias="DATABASE_HOST")
    database_port: int = Field(default=5432, alias="DATABASE_PORT")
    database_user: str = Field(default="postgres", alias="DATABASE_USER")
    database_password: str = Field(default="postgres", alias="DATABASE_PASSWORD")
    database_name: str = Field(default="dictionaries", alias="DATABASE_NAME")
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_db: int = Field(default=0, alias="REDIS_DB")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_dir: str = Field(default="log", alias="LOG_DIR")
    log_file_name: str = Field(default="app.log", alias="LOG_FILE_NAME")
    log_json: bool = Field(default=False, alias="LOG_JSON")
    app_port: int = Field(default=8000, alias="APP_PORT")
    timezone: str = Field(default="Asia/Tashkent", alias="TIMEZONE")

    # 导入与撤销/重做策略
    default_operator_id: int = Field(default=1, ge=1, alias="DEFAULT_OPERATOR_ID")
    import_max_rows: int = Field(default=10000, ge=1, alias="IMPORT_MAX_ROWS")
    import_timeout_seconds: float = Field(default=120.0, ge=0, alias="IMPORT_TIMEOUT_SECONDS")
    undo_conflict_policy: Literal["partial", "strict"] = Field(default="partial", alias="UNDO_CONFLICT_POLICY")

    # 按字典编码加锁：auto 优先尝试 Redis，失败时回退到进程内锁
    lock_backend: Literal["auto", "redis", "memory"] = Field(default="auto", alias="LOCK_BACKEND")
    lock_timeout_seconds: float = Field(default=300.0, gt=0, alias="LOCK_TIMEOUT_SECONDS")
    lock_wait_seconds: float = Field(default=10.0, ge=0, alias="LOCK_WAIT_SECONDS")

    model_config = SettingsConfigDict(extra="ignore")

    @field_validator("undo_conflict_policy", "lock_backend", mode="before")
    @classmethod
    def _lower_choice(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: object) -> object:
        return value.strip().upper() if isinstance(value, str) else value

    @property
    def sql_database_url(self) -> str:
        """优先使用 ``DATABASE_URL``，否则根据分项设置拼接 PostgreSQL 连接串。"""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg2://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def redis_url(self) -> str:
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    @property
    def log_directory(self) -> Path:
        """返回日志目录的绝对路径，相对路径以项目根目录为基准。"""
        path = Path(self.log_dir)
        return path if path.is_absolute() else BASE_DIR / path

    @property
    def log_file_path(self) -> Path:
        return self.log_directory / self.log_file_name

    @property
    def timezone_info(self) -> ZoneInfo:
        """返回当前配置对应的时区信息，无法解析时回退到 UTC。"""
        try:
            return ZoneInfo(self.timezone)
        except ZoneInfoNotFoundError:
            return ZoneInfo("UTC")

    @property
    def strict_undo_conflicts(self) -> bool:
        """撤销/重做遇到冲突时是否整体放弃（all-or-nothing）。"""
        return self.undo_conflict_policy == "strict"


@lru_cache
def get_settings() -> Settings:
    """返回单例化的配置对象，避免重复解析环境变量造成性能浪费。"""
    return Settings()
