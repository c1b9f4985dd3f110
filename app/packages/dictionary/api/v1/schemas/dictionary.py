"""字典项相关的请求与响应模型。"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.packages.dictionary.api.v1.schemas.common import PageData, ResponseEnvelope


class DictionaryItemDetail(BaseModel):
    id: int
    dictionary_code: str
    code: str
    name: str
    name_en: Optional[str] = None
    name_ru: Optional[str] = None
    name_uz: Optional[str] = None
    description: Optional[str] = None
    description_en: Optional[str] = None
    description_ru: Optional[str] = None
    description_uz: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    symbol: Optional[str] = None
    sort_order: int
    is_active: bool
    notes: Optional[str] = None
    version: int
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    create_time: Optional[str] = None
    update_time: Optional[str] = None


class DictionaryItemUpdateRequest(BaseModel):
    """直接编辑字典项：只覆盖请求中出现的字段；``version`` 用于乐观并发校验。"""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    name_en: Optional[str] = Field(default=None, max_length=255)
    name_ru: Optional[str] = Field(default=None, max_length=255)
    name_uz: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    description_en: Optional[str] = Field(default=None, max_length=1000)
    description_ru: Optional[str] = Field(default=None, max_length=1000)
    description_uz: Optional[str] = Field(default=None, max_length=1000)
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    symbol: Optional[str] = Field(default=None, max_length=10)
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None
    notes: Optional[str] = Field(default=None, max_length=500)
    version: Optional[int] = Field(default=None, ge=1, description="编辑前读取到的版本号")


DictionaryItemListResponse = ResponseEnvelope[PageData[DictionaryItemDetail]]
DictionaryItemResponse = ResponseEnvelope[DictionaryItemDetail]

