"""Extraction stage: map a source object into a target shape via field paths.

An extraction spec is a mapping of target field to one of:

* a dotted path into the source (``"queryStringParameters.id"``,
  ``"items.0.sku"``),
* a nested spec producing a nested mapping,
* a callable receiving the whole source.

Paths that do not resolve produce ``None``.
"""

import json
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Union

from chainway.errors import ExtractionError
from chainway.schemas.event import IncomingRequest

ExtractionSpec = Mapping[str, Union[str, "ExtractionSpec", Callable[[Any], Any]]]


def _resolve(source: Any, path: str) -> Any:
    current = source
    for segment in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(segment)
        elif isinstance(current, Sequence) and not isinstance(current, str) and segment.isdigit():
            index = int(segment)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def reflect(spec: ExtractionSpec, source: Any) -> dict[str, Any]:
    """Evaluate every field of ``spec`` against ``source``; inputs are not modified."""
    target: dict[str, Any] = {}
    for field_name, rule in spec.items():
        if isinstance(rule, str):
            target[field_name] = _resolve(source, rule)
        elif isinstance(rule, Mapping):
            target[field_name] = reflect(rule, source)
        elif callable(rule):
            target[field_name] = rule(source)
        else:
            raise TypeError(f"Unsupported extraction rule for {field_name!r}: {rule!r}")
    return target


def parse_body(request: IncomingRequest) -> Any:
    """Parse the request body as JSON, treating an absent body as an empty object."""
    if not request.body:
        return {}
    try:
        return json.loads(request.body)
    except json.JSONDecodeError as e:
        raise ExtractionError("body", f"invalid JSON ({e.msg})") from e


def reshape_body(spec: ExtractionSpec, request: IncomingRequest) -> IncomingRequest:
    """Rewrite the request body through ``spec``; an empty result keeps the original body."""
    if request.body is None:
        return request
    reshaped = _run(spec, parse_body(request), "body")
    if not reshaped:
        return request
    return request.with_body(json.dumps(reshaped))


def extract_query(spec: ExtractionSpec | None, request: IncomingRequest) -> dict[str, Any]:
    if spec is None:
        return {}
    return _run(spec, request.to_source(), "request")


def _run(spec: ExtractionSpec, source: Any, label: str) -> dict[str, Any]:
    try:
        return reflect(spec, source)
    except ExtractionError:
        raise
    except Exception as e:
        raise ExtractionError(label, str(e) or type(e).__name__) from e
