"""启动时中断批次恢复的测试。"""

from app.packages.dictionary.core.enums import ImportMode, ImportStatus
from app.packages.dictionary.crud.import_batch import import_batch_crud
from app.packages.dictionary.db.init_db import INTERRUPTED_BATCH_MESSAGE, recover_interrupted_batches


def test_interrupted_batches_are_marked_failed(db_session_fixture, dictionary_code):
    batch = import_batch_crud.create(
        db_session_fixture,
        {
            "dictionary_code": dictionary_code,
            "file_name": "units.xlsx",
            "import_mode": ImportMode.UPSERT.value,
            "skip_errors": False,
            "total_records": 4,
            "status": ImportStatus.IN_PROGRESS.value,
            "error_log": ["Row 2: InvalidRow(name: Field required)"],
        },
    )

    recovered = recover_interrupted_batches(db_session_fixture)
    db_session_fixture.commit()

    assert recovered >= 1
    db_session_fixture.refresh(batch)
    assert batch.status == ImportStatus.FAILED.value
    assert batch.successful_records == 0
    assert batch.failed_records == 4
    assert batch.error_log == [
        "Row 2: InvalidRow(name: Field required)",
        INTERRUPTED_BATCH_MESSAGE,
    ]
    assert batch.completed_at is not None
    assert recover_interrupted_batches(db_session_fixture) == 0
