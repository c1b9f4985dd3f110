"""操作日志的 CRUD 操作封装。"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Tuple

from sqlalchemy.orm import Session

from app.packages.dictionary.crud.base import CRUDBase
from app.packages.dictionary.models.operation_log import OperationLog


class OperationLogCRUD(CRUDBase[OperationLog]):
    def list_with_filters(
        self,
        db: Session,
        *,
        dictionary_code: Optional[str] = None,
        business_types: Optional[Iterable[str]] = None,
        statuses: Optional[Iterable[str]] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[list[OperationLog], int]:
        query = self.query(db)

        if dictionary_code:
            query = query.filter(self.model.dictionary_code == dictionary_code.strip())
        if business_types:
            query = query.filter(self.model.business_type.in_(set(business_types)))
        if statuses:
            query = query.filter(self.model.status.in_(set(statuses)))
        if start_time:
            query = query.filter(self.model.operate_time >= start_time)
        if end_time:
            query = query.filter(self.model.operate_time <= end_time)

        total = query.count()
        items = (
            query.order_by(self.model.operate_time.desc(), self.model.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return items, total


operation_log_crud = OperationLogCRUD(OperationLog)

