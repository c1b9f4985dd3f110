"""API v1 汇总路由：统一挂载所有版本化的子路由。"""

from fastapi import APIRouter

from app.packages.dictionary.api.v1.endpoints import dictionaries, imports, logs

api_router = APIRouter()
api_router.include_router(imports.router)
api_router.include_router(dictionaries.router)
api_router.include_router(logs.router)
