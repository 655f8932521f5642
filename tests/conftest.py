import json
from collections.abc import Callable
from typing import Any

import pytest

from chainway.config import Settings
from chainway.pipeline.controller import Pipeline, handler_builder
from chainway.pipeline.validation import SchemaValidator
from chainway.schemas.event import IncomingRequest

SIGNUP_SCHEMA = {
    "type": "object",
    "required": ["email", "name", "password"],
    "properties": {
        "email": {"type": "string", "format": "email"},
        "name": {"type": "string", "minLength": 2},
        "password": {"type": "string", "minLength": 8},
    },
    "additionalProperties": False,
}


def make_request(
    method: str = "GET",
    body: Any = None,
    headers: dict[str, str] | None = None,
    **kwargs: Any,
) -> IncomingRequest:
    if body is not None and not isinstance(body, str):
        body = json.dumps(body)
    if headers is None:
        headers = {"content-type": "application/json"} if method in ("POST", "PUT") else {}
    return IncomingRequest(method=method, headers=headers, body=body, **kwargs)


@pytest.fixture
def config() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def validator() -> SchemaValidator:
    return SchemaValidator()


@pytest.fixture
def build(config: Settings, validator: SchemaValidator) -> Callable[..., Pipeline]:
    return handler_builder(config, validator)
