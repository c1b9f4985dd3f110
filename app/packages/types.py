"""业务包元数据定义：主应用只通过 ``AppPackage`` 与具体业务包交互。"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import Logger
from typing import Any, Awaitable, Callable, Dict, Type

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

ExceptionHandler = Callable[[Request, Any], Awaitable[JSONResponse]]


@dataclass(frozen=True)
class AppPackage:
    """一个业务包暴露给主应用的路由、配置、日志与生命周期钩子。

    ``on_startup`` 在接收请求前执行（建表、恢复中断的导入批次），
    ``on_shutdown`` 在进程退出前释放连接池与锁后端。
    ``exception_handlers`` 按异常类型注册，键的顺序即注册顺序。
    """

    name: str
    api_router: APIRouter
    get_settings: Callable[[], Any]
    setup_logging: Callable[[], None]
    logger: Logger
    on_startup: Callable[[], None]
    on_shutdown: Callable[[], None]
    create_response: Callable[..., Dict[str, Any]]
    exception_handlers: Dict[Type[Exception], ExceptionHandler] = field(default_factory=dict)
