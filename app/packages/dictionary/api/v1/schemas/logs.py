"""操作日志相关的响应模型。"""

from typing import Optional

from pydantic import BaseModel

from app.packages.dictionary.api.v1.schemas.common import PageData, ResponseEnvelope


class OperationLogListItem(BaseModel):
    log_number: str
    module: str
    operation_type: str
    operation_type_code: str
    dictionary_code: Optional[str]
    operator_id: Optional[int]
    operator_ip: Optional[str]
    request_method: Optional[str]
    request_uri: Optional[str]
    class_method: Optional[str]
    request_params: Optional[str]
    response_params: Optional[str]
    status: str
    status_code: str
    error_message: Optional[str]
    operate_time: Optional[str]
    cost_ms: int


OperationLogListResponse = ResponseEnvelope[PageData[OperationLogListItem]]
