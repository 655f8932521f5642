import base64
import binascii
import uuid
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chainway.errors import ExtractionError

JSON_CONTENT_TYPE = "application/json"
BODY_METHODS = frozenset({"POST", "PUT"})


def find_header(headers: Mapping[str, str] | None, name: str) -> str | None:
    wanted = name.lower()
    for key, value in (headers or {}).items():
        if key.lower() == wanted:
            return value
    return None


def decode_body(raw: bytes | str, base64_encoded: bool = False) -> str:
    """Decode a raw body to text; undecodable input is an ExtractionError."""
    try:
        if base64_encoded:
            raw = base64.b64decode(raw, validate=True)
        return raw.decode("utf-8") if isinstance(raw, bytes) else raw
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ExtractionError("body", f"undecodable bytes ({e})") from e


class IncomingRequest(BaseModel):
    """One inbound HTTP-style event, immutable for the life of an invocation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    method: str = Field(alias="httpMethod")
    path: str = "/"
    headers: dict[str, str] = Field(default_factory=dict)
    body: str | None = None
    query_parameters: dict[str, str] = Field(
        default_factory=dict, alias="queryStringParameters"
    )
    path_parameters: dict[str, str] = Field(default_factory=dict, alias="pathParameters")
    request_context: dict[str, Any] = Field(default_factory=dict, alias="requestContext")

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @field_validator(
        "headers", "query_parameters", "path_parameters", "request_context", mode="before"
    )
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        # API Gateway sends null for absent maps.
        return {} if value is None else value

    @classmethod
    def from_event(cls, event: dict[str, Any]) -> "IncomingRequest":
        """Build a request from an API Gateway REST proxy event."""
        body = event.get("body")
        if body is not None:
            body = decode_body(body, bool(event.get("isBase64Encoded")))
        return cls.model_validate(
            {
                "httpMethod": event.get("httpMethod", "GET"),
                "path": event.get("path") or "/",
                "headers": event.get("headers"),
                "body": body,
                "queryStringParameters": event.get("queryStringParameters"),
                "pathParameters": event.get("pathParameters"),
                "requestContext": event.get("requestContext"),
            }
        )

    def header(self, name: str) -> str | None:
        return find_header(self.headers, name)

    @property
    def origin(self) -> str | None:
        return self.header("origin")

    @property
    def content_type(self) -> str | None:
        return self.header("content-type")

    @property
    def declares_json(self) -> bool:
        content_type = self.content_type
        return content_type is not None and JSON_CONTENT_TYPE in content_type.lower()

    @property
    def carries_body(self) -> bool:
        return self.method in BODY_METHODS

    def with_body(self, body: str) -> "IncomingRequest":
        return self.model_copy(update={"body": body})

    def to_source(self) -> dict[str, Any]:
        """The camelCase event shape that query extraction reads from."""
        return self.model_dump(by_alias=True)


class InvocationContext(BaseModel):
    """Opaque per-invocation token handed through to every stage."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    raw: Any = None
