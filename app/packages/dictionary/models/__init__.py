"""模型包初始化，便于统一导入 ORM 实体并触发模型注册。"""

from app.packages.dictionary.models.dictionary import DictionaryItem
from app.packages.dictionary.models.import_batch import ChangeJournalEntry, ImportBatch
from app.packages.dictionary.models.operation_log import OperationLog
from app.packages.dictionary.models.undo_stack import UndoRedoStack

__all__ = [
    "ChangeJournalEntry",
    "DictionaryItem",
    "ImportBatch",
    "OperationLog",
    "UndoRedoStack",
]
