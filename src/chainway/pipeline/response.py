import json
from collections.abc import Collection, Mapping
from datetime import datetime, timezone
from typing import Any

from pydantic_core import to_jsonable_python

from chainway.errors import PayloadTooLargeError, SchemaValidationError
from chainway.pipeline.origin import resolve_origin
from chainway.schemas.response import ErrorBody, ResponseEnvelope, ValidationErrorDetail

CONTENT_TYPE_HEADERS = {"Content-Type": "application/json"}
UNEXPECTED_ERROR_MESSAGE = "Unexpected error occurred"


def serialize(value: Any) -> str:
    return json.dumps(
        value, default=to_jsonable_python, separators=(",", ":"), ensure_ascii=False
    )


def compose_headers(
    security_headers: Mapping[str, str],
    request_origin: str | None,
    whitelist: Collection[str] | None,
) -> dict[str, str]:
    return {
        **security_headers,
        "Access-Control-Allow-Origin": resolve_origin(request_origin, whitelist),
        **CONTENT_TYPE_HEADERS,
    }


def iso_timestamp(moment: datetime | None = None) -> str:
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def success(result: Any, headers: dict[str, str], max_response_size: int) -> ResponseEnvelope:
    """Serialize a chain result; an oversized body becomes PayloadTooLargeError."""
    body = serialize(result)
    size = len(body.encode("utf-8"))
    if size > max_response_size:
        raise PayloadTooLargeError(size, max_response_size)
    return ResponseEnvelope(status_code=200, headers=headers, body=body)


def failure(
    error: BaseException, status_code: int, request_id: str, headers: dict[str, str]
) -> ResponseEnvelope:
    error_body = ErrorBody(
        message=str(error) or UNEXPECTED_ERROR_MESSAGE,
        code=status_code,
        request_id=request_id,
        timestamp=iso_timestamp(),
    )
    if isinstance(error, SchemaValidationError):
        error_body.validation_errors = [
            ValidationErrorDetail(
                path=finding.key,
                message=finding.message,
                keyword=finding.keyword,
                params=finding.params,
            )
            for finding in error.findings
        ]
    return ResponseEnvelope(
        status_code=status_code,
        headers=headers,
        # Finding params may legitimately hold null values, so only drop the
        # absent list itself.
        body=error_body.model_dump_json(
            by_alias=True,
            exclude={"validation_errors"} if error_body.validation_errors is None else None,
        ),
    )
