from collections.abc import Collection

WILDCARD = "*"
# Literal value, not None: browsers treat it as a non-matching origin.
BLOCKED = "null"


def resolve_origin(request_origin: str | None, whitelist: Collection[str] | None) -> str:
    """Return the Access-Control-Allow-Origin value for a request."""
    if whitelist is None or not request_origin:
        return WILDCARD
    return request_origin if request_origin in whitelist else BLOCKED
