"""Validation gate: JSON Schema checks that normalize the value they accept.

Accepted values come back normalized: missing properties receive their
schema defaults, scalars are coerced to the declared type, and properties
forbidden by ``additionalProperties: false`` are stripped instead of
rejected. Every finding is reported, not only the first one.
"""

import copy
import json
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

import jsonschema
from jsonschema import validators
from jsonschema.exceptions import ValidationError
from jsonschema.protocols import Validator

from chainway.errors import SchemaValidationError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
GENERIC_KEY = "generic"
CONSOLIDATION_KEYWORD = "errorMessage"

_UNCOERCIBLE = object()


@dataclass(frozen=True)
class Finding:
    key: str
    message: str
    keyword: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class ValidationResult:
    valid: bool
    value: Any
    findings: list[Finding] = field(default_factory=list)


def _is_email(value: object) -> bool:
    if not isinstance(value, str):
        return True
    return EMAIL_PATTERN.match(value) is not None


# --- Type coercion ---


def _matches_type(value: Any, type_name: str) -> bool:
    if type_name == "null":
        return value is None
    if type_name == "boolean":
        return isinstance(value, bool)
    if isinstance(value, bool):
        return False
    if type_name == "integer":
        return isinstance(value, int) or (isinstance(value, float) and value.is_integer())
    if type_name == "number":
        return isinstance(value, (int, float))
    if type_name == "string":
        return isinstance(value, str)
    if type_name == "array":
        return isinstance(value, list)
    if type_name == "object":
        return isinstance(value, dict)
    return False


def _parse_number(value: str) -> float | None:
    text = value.strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


def _coerce_to(value: Any, type_name: str) -> Any:
    if type_name == "string":
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float):
            return str(int(value)) if value.is_integer() else repr(value)
        if value is None:
            return ""
    elif type_name in ("number", "integer"):
        if isinstance(value, bool):
            return int(value)
        if value is None:
            return 0
        if isinstance(value, str):
            number = _parse_number(value)
            if number is None:
                return _UNCOERCIBLE
            if number.is_integer():
                return int(number)
            if type_name == "number":
                return number
    elif type_name == "boolean":
        if value in ("true", 1) and not isinstance(value, bool):
            return True
        if value in ("false", 0) and not isinstance(value, bool):
            return False
        if value is None:
            return False
    elif type_name == "null":
        if value == "" or (value == 0 and not isinstance(value, str)):
            return None
    return _UNCOERCIBLE


def coerce(value: Any, declared: str | list[str] | None) -> Any:
    """Coerce a scalar towards a declared JSON Schema type, or return it unchanged."""
    if declared is None or isinstance(value, (dict, list)):
        return value
    types = [declared] if isinstance(declared, str) else list(declared)
    if any(_matches_type(value, type_name) for type_name in types):
        return value
    for type_name in types:
        coerced = _coerce_to(value, type_name)
        if coerced is not _UNCOERCIBLE:
            return coerced
    return value


# --- Validator class ---


def _extra_properties(instance: dict[str, Any], schema: dict[str, Any]) -> list[str]:
    properties = schema.get("properties", {})
    patterns = schema.get("patternProperties", {})
    return [
        name
        for name in instance
        if name not in properties and not any(re.search(p, name) for p in patterns)
    ]


def _extend(
    base: type[Validator],
    *,
    use_defaults: bool,
    coerce_types: bool,
    remove_additional: bool,
) -> type[Validator]:
    base_properties = base.VALIDATORS["properties"]
    base_items = base.VALIDATORS["items"]
    base_additional = base.VALIDATORS["additionalProperties"]

    def normalize_object(instance: dict[str, Any], schema: dict[str, Any]) -> None:
        # Idempotent, so every object keyword may call it regardless of keyword order.
        for name, subschema in schema.get("properties", {}).items():
            if not isinstance(subschema, dict):
                continue
            if name in instance:
                if coerce_types:
                    instance[name] = coerce(instance[name], subschema.get("type"))
            elif use_defaults and "default" in subschema:
                instance[name] = copy.deepcopy(subschema["default"])
        if remove_additional and schema.get("additionalProperties") is False:
            for name in _extra_properties(instance, schema):
                del instance[name]

    def properties(validator, properties, instance, schema):
        if validator.is_type(instance, "object"):
            normalize_object(instance, schema)
        yield from base_properties(validator, properties, instance, schema)

    def required(validator, required, instance, schema):
        if not validator.is_type(instance, "object"):
            return
        normalize_object(instance, schema)
        for name in required:
            if name not in instance:
                error = ValidationError(f"{name!r} is a required property")
                error.params = {"missingProperty": name}
                yield error

    def additional_properties(validator, additional, instance, schema):
        if not validator.is_type(instance, "object"):
            return
        normalize_object(instance, schema)
        if additional is not False:
            yield from base_additional(validator, additional, instance, schema)
            return
        for name in _extra_properties(instance, schema):
            error = ValidationError(f"Additional properties are not allowed ({name!r} was unexpected)")
            error.params = {"additionalProperty": name}
            yield error

    def items(validator, items, instance, schema):
        if coerce_types and isinstance(items, dict) and validator.is_type(instance, "array"):
            for index, element in enumerate(instance):
                instance[index] = coerce(element, items.get("type"))
        yield from base_items(validator, items, instance, schema)

    return validators.extend(
        base,
        {
            "properties": properties,
            "required": required,
            "additionalProperties": additional_properties,
            "items": items,
        },
    )


# --- Findings ---


def _join(parent: str, name: str) -> str:
    return f"{parent}.{name}" if parent else name


def finding_key(error: ValidationError) -> str:
    path = ".".join(str(segment) for segment in error.absolute_path)
    params = getattr(error, "params", {})
    if "missingProperty" in params:
        return _join(path, params["missingProperty"])
    if "additionalProperty" in params:
        return _join(path, params["additionalProperty"])
    if path:
        return path
    if error.validator == "format":
        return str(error.validator_value)
    return GENERIC_KEY


def _finding_params(error: ValidationError) -> dict[str, Any]:
    params = getattr(error, "params", None)
    if params is not None:
        return dict(params)
    return {str(error.validator): error.validator_value}


# Keywords whose next schema-path segment names a child schema.
_KEYED_KEYWORDS = frozenset({"properties", "patternProperties", "dependencies", "allOf", "anyOf", "oneOf"})
# Keywords whose child schema applies to a member of the instance.
_DESCENDING_KEYWORDS = frozenset(
    {"properties", "patternProperties", "additionalProperties", "items", "additionalItems", "contains"}
)


def _schema_trail(root: Any, error: ValidationError) -> list[tuple[Any, int]]:
    """Schemas from the root down to the one holding the failing keyword.

    Each entry pairs a schema with the instance depth it applies at.
    """
    trail = [(root, 0)]
    node, depth = root, 0
    segments = list(error.absolute_schema_path)[:-1]
    index = 0
    while index < len(segments):
        keyword = segments[index]
        if not isinstance(node, dict) or keyword not in node:
            break
        child = node[keyword]
        index += 1
        if keyword in _KEYED_KEYWORDS or (keyword == "items" and isinstance(child, list)):
            if index >= len(segments):
                break
            try:
                child = child[segments[index]]
            except (KeyError, IndexError, TypeError):
                break
            index += 1
        if keyword in _DESCENDING_KEYWORDS:
            depth += 1
        node = child
        trail.append((node, depth))

    if trail[-1][0] is not error.schema:
        # $ref targets are not spelled out in the schema path.
        trail.append((error.schema, len(error.absolute_path)))
    return trail


def _consolidation(root: Any, error: ValidationError) -> tuple[str, tuple[Any, ...], str] | None:
    """Return ``(message, marker, key)`` when an ``errorMessage`` covers ``error``."""
    trail = _schema_trail(root, error)
    own = error.schema.get(CONSOLIDATION_KEYWORD) if isinstance(error.schema, dict) else None
    if isinstance(own, dict) and isinstance(own.get(error.validator), str):
        key = finding_key(error)
        return own[error.validator], (id(error.schema), error.validator, key), key

    for schema, depth in reversed(trail):
        custom = schema.get(CONSOLIDATION_KEYWORD) if isinstance(schema, dict) else None
        if isinstance(custom, str):
            location = tuple(error.absolute_path)[:depth]
            key = ".".join(str(segment) for segment in location) or GENERIC_KEY
            return custom, (id(schema), location), key
    return None


def format_findings(errors: Iterable[ValidationError], schema: Any) -> list[Finding]:
    """Turn raw validator errors into user-facing findings.

    A string ``errorMessage`` replaces every error raised by its schema or
    any schema nested below it with one finding for that instance location.
    A mapping replaces only the errors of the keywords it names, in its own
    schema.
    """
    findings: list[Finding] = []
    consolidated: dict[tuple[Any, ...], Finding] = {}

    for error in errors:
        covered = _consolidation(schema, error)
        if covered is None:
            findings.append(
                Finding(
                    key=finding_key(error),
                    message=error.message,
                    keyword=str(error.validator),
                    params=_finding_params(error),
                )
            )
            continue

        message, marker, key = covered
        existing = consolidated.get(marker)
        if existing is not None:
            existing.params["errors"].append(error.validator)
            continue
        finding = Finding(
            key=key,
            message=message,
            keyword=CONSOLIDATION_KEYWORD,
            params={"errors": [error.validator]},
        )
        consolidated[marker] = finding
        findings.append(finding)

    return findings


class SchemaValidator:
    """Process-wide validator configuration.

    Built once and handed to every pipeline that validates bodies; compiled
    schemas are cached on the instance.
    """

    def __init__(
        self,
        *,
        use_defaults: bool = True,
        coerce_types: bool = True,
        remove_additional: bool = True,
        base: type[Validator] = jsonschema.Draft7Validator,
    ) -> None:
        self._format_checker = jsonschema.FormatChecker()
        self._format_checker.checks("email")(_is_email)
        self._cls = _extend(
            base,
            use_defaults=use_defaults,
            coerce_types=coerce_types,
            remove_additional=remove_additional,
        )
        self._compiled: dict[str, Callable[[Any], ValidationResult]] = {}

    def add_format(self, name: str, predicate: Callable[[object], bool]) -> None:
        self._format_checker.checks(name)(predicate)

    def compile(self, schema: dict[str, Any]) -> Callable[[Any], ValidationResult]:
        cache_key = json.dumps(schema, sort_keys=True, default=str)
        compiled = self._compiled.get(cache_key)
        if compiled is not None:
            return compiled

        self._cls.check_schema(schema)
        instance_validator = self._cls(schema, format_checker=self._format_checker)

        def compiled(value: Any) -> ValidationResult:
            normalized = copy.deepcopy(value)
            errors = list(instance_validator.iter_errors(normalized))
            return ValidationResult(
                valid=not errors,
                value=normalized,
                findings=format_findings(errors, schema),
            )

        self._compiled[cache_key] = compiled
        return compiled

    def validate(self, schema: dict[str, Any], value: Any) -> Any:
        """Return the normalized value or raise SchemaValidationError with every finding."""
        result = self.compile(schema)(value)
        if not result.valid:
            raise SchemaValidationError("Validation failed", result.findings)
        return result.value
