"""常量定义：集中维护 HTTP 状态码与导入模块使用的固定取值。"""

HTTP_STATUS_OK = 200
HTTP_STATUS_BAD_REQUEST = 400
HTTP_STATUS_NOT_FOUND = 404
HTTP_STATUS_CONFLICT = 409
HTTP_STATUS_LOCKED = 423
HTTP_STATUS_INTERNAL_SERVER_ERROR = 500

# 请求头中携带的操作人标识，认证体系由外部网关负责
OPERATOR_HEADER = "X-Operator-Id"

# 三种固定的本地化语言
SUPPORTED_LOCALES = ("en", "ru", "uz")

# 导入模板与导出使用的列顺序
IMPORT_COLUMNS = (
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
    "sort_order",
    "is_active",
    "notes",
)

OPERATION_LOG_MODULE = "字典批量导入"
