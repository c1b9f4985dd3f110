"""字典业务包：多语言字典项的批量导入与撤销/重做。"""

from fastapi import HTTPException

from app.packages.types import AppPackage

from .api.v1 import api_router
from .core.config import get_settings
from .core.exceptions import generic_exception_handler, http_exception_handler
from .core.logger import logger, setup_logging
from .core.responses import create_response
from .db.init_db import init_db, shutdown

package = AppPackage(
    name="dictionary",
    api_router=api_router,
    get_settings=get_settings,
    setup_logging=setup_logging,
    logger=logger,
    on_startup=init_db,
    on_shutdown=shutdown,
    create_response=create_response,
    exception_handlers={
        HTTPException: http_exception_handler,
        Exception: generic_exception_handler,
    },
)

__all__ = ["package", "api_router", "get_settings"]
