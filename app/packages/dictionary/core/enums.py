"""枚举定义：约束导入模式、批次状态与变更日志操作类型的可选值。"""

from enum import Enum


class ImportMode(str, Enum):
    """批量导入模式，整批固定使用其中一种。"""

    CREATE = "create"
    UPDATE = "update"
    UPSERT = "upsert"


class ImportStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


class JournalOperation(str, Enum):
    CREATED = "created"
    UPDATED = "updated"


class RowErrorCode(str, Enum):
    """行级可恢复错误，写入批次的 ``error_log``。"""

    CODE_ALREADY_EXISTS = "CodeAlreadyExists"
    CODE_NOT_FOUND = "CodeNotFound"
    DUPLICATE_CODE = "DuplicateCode"
    INVALID_ROW = "InvalidRow"
    VERSION_CONFLICT = "VersionConflict"


class OperationLogTypeEnum(str, Enum):
    """操作日志的业务类型枚举。"""

    IMPORT = "import"
    UNDO = "undo"
    REDO = "redo"
    UPDATE = "update"
    DELETE = "delete"
    OTHER = "other"


class OperationLogStatusEnum(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
