from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ValidationErrorDetail(BaseModel):
    path: str
    message: str
    keyword: str
    params: dict[str, Any] = Field(default_factory=dict)


class ErrorBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    code: int
    request_id: str = Field(alias="requestId")
    timestamp: str
    validation_errors: list[ValidationErrorDetail] | None = Field(
        default=None, alias="validationErrors"
    )


class ResponseEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status_code: int = Field(alias="statusCode")
    headers: dict[str, str] = Field(default_factory=dict)
    body: str

    def to_proxy_result(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
