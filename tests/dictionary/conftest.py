"""字典导入相关用例共享的夹具。"""

from typing import Any, Callable, Mapping, Optional, Sequence

import pytest
from sqlalchemy.orm import Session

from app.packages.dictionary.core.enums import ImportMode
from app.packages.dictionary.crud.dictionary import dictionary_item_crud
from app.packages.dictionary.models.dictionary import DictionaryItem
from app.packages.dictionary.models.import_batch import ImportBatch
from app.packages.dictionary.services.import_executor import import_executor
from app.packages.dictionary.services.row_validator import validate_rows

OPERATOR_ID = 7


@pytest.fixture()
def seed_item(db_session_fixture: Session, dictionary_code: str) -> Callable[..., DictionaryItem]:
    """绕过导入流程直接写入一条字典项，模拟导入前已存在的数据。"""

    def _seed(code: str, name: str, **values: Any) -> DictionaryItem:
        item = dictionary_item_crud.insert(
            db_session_fixture,
            dictionary_code=dictionary_code,
            code=code,
            values={"name": name, **values},
            operator_id=OPERATOR_ID,
        )
        db_session_fixture.commit()
        return item

    return _seed


@pytest.fixture()
def run_import(db_session_fixture: Session, dictionary_code: str) -> Callable[..., ImportBatch]:
    """校验并执行一次导入，返回终态批次。"""

    def _run(
        rows: Sequence[Mapping[str, Any]],
        *,
        mode: ImportMode = ImportMode.UPSERT,
        skip_errors: bool = False,
        code: Optional[str] = None,
    ) -> ImportBatch:
        target = code or dictionary_code
        validated = validate_rows(db_session_fixture, dictionary_code=target, raw_rows=rows)
        return import_executor.execute(
            db_session_fixture,
            dictionary_code=target,
            mode=mode,
            rows=validated,
            skip_errors=skip_errors,
            file_name="units.xlsx",
            operator_id=OPERATOR_ID,
        )

    return _run


@pytest.fixture()
def fetch_item(db_session_fixture: Session, dictionary_code: str) -> Callable[[str], Optional[DictionaryItem]]:
    """按编码读取字典项的最新状态。"""

    def _fetch(code: str) -> Optional[DictionaryItem]:
        db_session_fixture.expire_all()
        return dictionary_item_crud.get_by_code(db_session_fixture, dictionary_code=dictionary_code, code=code)

    return _fetch
