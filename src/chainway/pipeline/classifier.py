from collections.abc import Iterable, Mapping
from typing import Union

from chainway.errors import ErrorKind, StageError, kind_of

DEFAULT_STATUS = 500

ErrorMatcher = Union[ErrorKind, type[BaseException]]
ErrorMapping = list[tuple[int, list[ErrorMatcher]]]

BUILTIN_RULES: ErrorMapping = [
    (400, [ErrorKind.SCHEMA_VALIDATION]),
    (408, [ErrorKind.REQUEST_TIMEOUT]),
    (413, [ErrorKind.PAYLOAD_TOO_LARGE]),
]


def build_error_mapping(
    user_rules: Mapping[int, Iterable[ErrorMatcher]] | None = None,
) -> ErrorMapping:
    """Prepend user rules to the built-in ones.

    A user rule for a built-in status keeps its position and gains the
    built-in kind instead of replacing it.
    """
    builtin = {status: matchers for status, matchers in BUILTIN_RULES}
    mapping: ErrorMapping = []
    for status, matchers in (user_rules or {}).items():
        merged = list(matchers)
        for extra in builtin.pop(int(status), []):
            if extra not in merged:
                merged.append(extra)
        mapping.append((int(status), merged))
    for status, matchers in BUILTIN_RULES:
        if status in builtin:
            mapping.append((status, list(matchers)))
    return mapping


def _matches(matcher: ErrorMatcher, error: BaseException) -> bool:
    if isinstance(matcher, ErrorKind):
        return kind_of(error) is matcher
    if isinstance(error, matcher):
        return True
    return isinstance(error, StageError) and isinstance(error.cause, matcher)


def classify(error: BaseException, mapping: ErrorMapping) -> int:
    """Return the status of the first rule matching ``error``."""
    for status, matchers in mapping:
        if any(_matches(matcher, error) for matcher in matchers):
            return status
    return DEFAULT_STATUS
