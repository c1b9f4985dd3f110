"""导入行校验：把已解析的表格行转换为结构合法的 ``ImportRow`` 并预判目标字典项。

校验只关心字段形状与批内重复；编码是否已存在由导入执行器在持锁状态下再次判断。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy.orm import Session

from app.packages.dictionary.core.constants import SUPPORTED_LOCALES
from app.packages.dictionary.core.enums import RowErrorCode
from app.packages.dictionary.crud.dictionary import dictionary_item_crud

_TEXT_FIELDS = (
    "code",
    "name",
    "name_en",
    "name_ru",
    "name_uz",
    "description",
    "description_en",
    "description_ru",
    "description_uz",
    "icon",
    "color",
    "symbol",
    "notes",
)

# 不可为空的列：单元格留空视为“未提供”，而不是清空
_NON_NULLABLE_OPTIONALS = ("sort_order", "is_active")


class ImportRow(BaseModel):
    """单行导入数据。"""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    code: str = Field(min_length=1, max_length=100, pattern=r"^[A-Za-z0-9_-]+$")
    name: str = Field(min_length=1, max_length=255)
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

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        # Excel 会把纯数字编码读成 int/float
        if isinstance(value, bool):
            return value
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator(*_NON_NULLABLE_OPTIONALS, mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def values(self) -> Dict[str, Any]:
        """返回本行显式提供的内容字段（不含 ``code``），更新时只覆盖这些字段。"""
        data = self.model_dump(exclude_unset=True, exclude={"code"})
        for key in _NON_NULLABLE_OPTIONALS:
            if data.get(key, 0) is None:
                data.pop(key)
        return data

    def missing_translations(self) -> List[str]:
        return [locale for locale in SUPPORTED_LOCALES if not getattr(self, f"name_{locale}")]


@dataclass
class ValidatedRow:
    """一行的校验结论：``row`` 与 ``error`` 二者恰有一个非空。"""

    row_number: int
    code: Optional[str]
    row: Optional[ImportRow] = None
    target_item_id: Optional[int] = None
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.error is None


def format_row_error(error_code: RowErrorCode, detail: Optional[str]) -> str:
    return f"{error_code.value}({detail or ''})"


def _describe_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "row"
    return f"{location}: {first.get('msg', 'invalid value')}"


def _raw_code(raw: Mapping[str, Any]) -> Optional[str]:
    value = raw.get("code")
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def parse_rows(raw_rows: Iterable[Mapping[str, Any]]) -> List[ValidatedRow]:
    """只做结构校验与批内重复检测，不访问数据库。"""
    results: List[ValidatedRow] = []
    seen_codes: set[str] = set()

    for index, raw in enumerate(raw_rows, start=1):
        code = _raw_code(raw)
        try:
            row = ImportRow.model_validate(dict(raw))
        except ValidationError as exc:
            results.append(
                ValidatedRow(
                    row_number=index,
                    code=code,
                    error=format_row_error(RowErrorCode.INVALID_ROW, _describe_validation_error(exc)),
                )
            )
            continue

        if row.code in seen_codes:
            results.append(
                ValidatedRow(
                    row_number=index,
                    code=row.code,
                    error=format_row_error(RowErrorCode.DUPLICATE_CODE, row.code),
                )
            )
            continue
        seen_codes.add(row.code)

        warnings = []
        missing = row.missing_translations()
        if missing:
            warnings.append(f"缺少翻译：{', '.join(missing)}")
        results.append(ValidatedRow(row_number=index, code=row.code, row=row, warnings=warnings))

    return results


def validate_rows(db: Session, *, dictionary_code: str, raw_rows: Iterable[Mapping[str, Any]]) -> List[ValidatedRow]:
    """结构校验后按 ``(dictionary_code, code)`` 查出已存在的字典项，填充 ``target_item_id``。"""
    results = parse_rows(raw_rows)
    existing = dictionary_item_crud.map_by_codes(
        db,
        dictionary_code=dictionary_code,
        codes=(item.code for item in results if item.is_valid),
    )
    for item in results:
        if item.is_valid and item.code in existing:
            item.target_item_id = existing[item.code].id
    return results
