"""异常处理模块：定义统一的业务异常、导入/撤销领域异常与响应格式。

错误分类：
- 行级可恢复错误（CodeAlreadyExists 等）不会以异常形式抛出，而是写入批次的 ``error_log``；
- 冲突（ConflictError）在撤销/重做中逐条记录，不会中断其余条目；
- 状态前置条件错误（InvalidStateError、NotTopOfStackError 等）在任何写入之前直接拒绝；
- 存储故障（StorageError/ImportStorageError）终止当前操作并以 500 返回。
"""

from typing import Any, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from app.packages.dictionary.core.logger import logger


class AppException(HTTPException):
    """携带统一响应结构的业务异常，方便在全局处理中转换响应体。"""

    def __init__(self, msg: str, code: int = status.HTTP_400_BAD_REQUEST, data: Any = None) -> None:
        super().__init__(status_code=code, detail=msg)
        self.msg = msg
        self.data = data


class ConflictError(AppException):
    """存储中的字典项版本与预期不一致。"""

    def __init__(self, msg: str = "字典项已被其他操作修改", *, item_id: Optional[int] = None, data: Any = None) -> None:
        super().__init__(msg, status.HTTP_409_CONFLICT, data)
        self.item_id = item_id


class InvalidStateError(AppException):
    """批次状态不满足撤销/重做的前置条件。"""

    def __init__(self, msg: str, data: Any = None) -> None:
        super().__init__(msg, status.HTTP_409_CONFLICT, data)


class NotTopOfStackError(AppException):
    """只有栈顶批次才允许撤销/重做。"""

    def __init__(self, msg: str, data: Any = None) -> None:
        super().__init__(msg, status.HTTP_409_CONFLICT, data)


class BatchPinnedError(AppException):
    """批次仍是当前撤销/重做栈顶，不允许删除其历史。"""

    def __init__(self, msg: str = "该导入批次仍位于撤销/重做栈顶，无法删除") -> None:
        super().__init__(msg, status.HTTP_409_CONFLICT)


class BatchNotFoundError(AppException):
    def __init__(self, batch_id: int) -> None:
        super().__init__(f"导入批次不存在：{batch_id}", status.HTTP_404_NOT_FOUND)
        self.batch_id = batch_id


class ItemNotFoundError(AppException):
    def __init__(self, item_id: int) -> None:
        super().__init__(f"字典项不存在：{item_id}", status.HTTP_404_NOT_FOUND)
        self.item_id = item_id


class DictionaryLockedError(AppException):
    """在等待时间内未能获得字典级互斥锁。"""

    def __init__(self, dictionary_code: str) -> None:
        super().__init__(f"字典 {dictionary_code} 正在被其他操作修改，请稍后重试", status.HTTP_423_LOCKED)
        self.dictionary_code = dictionary_code


class ImportTooLargeError(AppException):
    def __init__(self, total: int, limit: int) -> None:
        super().__init__(f"单次导入最多 {limit} 行，当前 {total} 行", status.HTTP_400_BAD_REQUEST)


class StorageError(AppException):
    """底层持久化失败，操作已整体回滚。"""

    def __init__(self, msg: str, data: Any = None) -> None:
        super().__init__(msg, status.HTTP_500_INTERNAL_SERVER_ERROR, data)


class ImportStorageError(StorageError):
    """导入过程中发生存储故障或超时；批次已被终结为 failed。"""

    def __init__(self, msg: str, *, batch_id: int) -> None:
        super().__init__(msg, data={"batch_id": batch_id})
        self.batch_id = batch_id


class ImportTimeoutError(Exception):
    """导入超出 ``IMPORT_TIMEOUT_SECONDS``，在执行器内部按存储故障处理。"""


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # pragma: no cover - framework glue
    """将 FastAPI 的 ``HTTPException`` 转换为统一响应格式。"""
    payload = {"msg": exc.detail, "data": getattr(exc, "data", None), "code": exc.status_code}
    return JSONResponse(status_code=exc.status_code, content=payload)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # pragma: no cover - framework glue
    """兜底处理：将未捕获异常转换为标准的 500 响应结构。"""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    payload = {
        "msg": "服务器内部错误",
        "data": None,
        "code": status.HTTP_500_INTERNAL_SERVER_ERROR,
    }
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload)
