"""字典项存储：按 (dictionary_code, code) 查询，以及带版本校验的写入。"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.packages.dictionary.core.exceptions import ConflictError
from app.packages.dictionary.crud.base import CRUDBase
from app.packages.dictionary.models.dictionary import CONTENT_FIELDS, DictionaryItem


class CRUDDictionaryItem(CRUDBase[DictionaryItem]):
    """字典项的数据访问。

    写方法只 ``flush`` 不提交；版本不匹配或唯一键冲突统一转换为 ``ConflictError``，
    调用方在保存点内调用即可保证失败时不留下部分写入。
    """

    def get_by_code(self, db: Session, *, dictionary_code: str, code: str) -> Optional[DictionaryItem]:
        return (
            self.query(db)
            .filter(self.model.dictionary_code == dictionary_code, self.model.code == code)
            .first()
        )

    def map_by_codes(self, db: Session, *, dictionary_code: str, codes: Iterable[str]) -> Dict[str, DictionaryItem]:
        unique_codes = {code for code in codes if code}
        if not unique_codes:
            return {}
        items = (
            self.query(db)
            .filter(self.model.dictionary_code == dictionary_code, self.model.code.in_(unique_codes))
            .all()
        )
        return {item.code: item for item in items}

    def list_with_filters(
        self,
        db: Session,
        *,
        dictionary_code: str,
        keyword: Optional[str] = None,
        active_only: bool = False,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[DictionaryItem], int]:
        """根据字典编码与关键字（匹配编码与各语言名称）返回分页后的字典项。"""
        query = self.query(db).filter(self.model.dictionary_code == dictionary_code)
        if active_only:
            query = query.filter(self.model.is_active.is_(True))

        if keyword:
            trimmed = keyword.strip()
            if trimmed:
                pattern = f"%{trimmed}%"
                query = query.filter(
                    or_(
                        self.model.code.ilike(pattern),
                        self.model.name.ilike(pattern),
                        self.model.name_en.ilike(pattern),
                        self.model.name_ru.ilike(pattern),
                        self.model.name_uz.ilike(pattern),
                    )
                )

        total = query.count()
        items = (
            query.order_by(self.model.sort_order.asc(), self.model.id.asc())
            .offset(max(skip, 0))
            .limit(max(limit, 1))
            .all()
        )
        return items, total

    def list_for_export(self, db: Session, *, dictionary_code: str, include_inactive: bool) -> List[DictionaryItem]:
        query = self.query(db).filter(self.model.dictionary_code == dictionary_code)
        if not include_inactive:
            query = query.filter(self.model.is_active.is_(True))
        return query.order_by(self.model.sort_order.asc(), self.model.id.asc()).all()

    # ------------------------------------------------------------------
    # 写入
    # ------------------------------------------------------------------

    def insert(
        self,
        db: Session,
        *,
        dictionary_code: str,
        code: str,
        values: Mapping[str, Any],
        operator_id: Optional[int],
        item_id: Optional[int] = None,
    ) -> DictionaryItem:
        """新增字典项；``item_id`` 用于重做时按原 ID 重建。"""
        payload = {field: values[field] for field in CONTENT_FIELDS if field in values}
        payload.setdefault("sort_order", 0)
        payload.setdefault("is_active", True)
        item = self.model(
            dictionary_code=dictionary_code,
            code=code,
            created_by=operator_id,
            updated_by=operator_id,
            **payload,
        )
        if item_id is not None:
            item.id = item_id
        db.add(item)
        try:
            db.flush()
        except IntegrityError as exc:
            raise ConflictError(f"字典项编码已存在：{code}", item_id=item_id) from exc
        return item

    def update_with_version(
        self,
        db: Session,
        item: DictionaryItem,
        *,
        expected_version: int,
        values: Mapping[str, Any],
        operator_id: Optional[int],
    ) -> DictionaryItem:
        """仅当存储版本等于 ``expected_version`` 时覆盖 ``values`` 中出现的内容字段。"""
        if item.version != expected_version:
            raise ConflictError(
                f"字典项 {item.code} 版本不一致：期望 {expected_version}，实际 {item.version}",
                item_id=item.id,
            )
        for field in CONTENT_FIELDS:
            if field in values:
                setattr(item, field, values[field])
        item.updated_by = operator_id
        db.add(item)
        try:
            db.flush()
        except StaleDataError as exc:
            raise ConflictError(f"字典项 {item.code} 已被并发修改", item_id=item.id) from exc
        return item

    def delete_with_version(self, db: Session, item: DictionaryItem, *, expected_version: int) -> None:
        if item.version != expected_version:
            raise ConflictError(
                f"字典项 {item.code} 版本不一致：期望 {expected_version}，实际 {item.version}",
                item_id=item.id,
            )
        db.delete(item)
        try:
            db.flush()
        except StaleDataError as exc:
            raise ConflictError(f"字典项 {item.code} 已被并发修改", item_id=item.id) from exc


dictionary_item_crud = CRUDDictionaryItem(DictionaryItem)

