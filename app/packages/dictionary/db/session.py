"""Database engine and session factory configuration."""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from app.packages.dictionary.core.config import get_settings

settings = get_settings()


def _connect_args(url: str) -> dict:
    # SQLite connections are shared with the request thread pool.
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


def configure_sqlite(target: Engine) -> Engine:
    """让 pysqlite 显式发出 BEGIN，并开启外键约束。

    导入与撤销依赖 SAVEPOINT 嵌套事务和 ON DELETE CASCADE，pysqlite 默认的隐式事务
    处理会让最外层 SAVEPOINT 的 RELEASE 直接提交。
    """
    if target.dialect.name != "sqlite":
        return target

    @event.listens_for(target, "connect")
    def _on_connect(dbapi_connection, connection_record):  # pragma: no cover - driver hook
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(target, "begin")
    def _on_begin(connection):  # pragma: no cover - driver hook
        connection.exec_driver_sql("BEGIN")

    return target


# ``pool_pre_ping`` keeps the connection pool healthy; ``echo`` mirrors SQL logs
# when enabled in settings for easier debugging.
engine = configure_sqlite(
    create_engine(
        settings.sql_database_url,
        pool_pre_ping=True,
        echo=settings.database_echo,
        connect_args=_connect_args(settings.sql_database_url),
    )
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
