import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from chainway.schemas.event import IncomingRequest, InvocationContext


@dataclass(frozen=True)
class Deadline:
    """Single wall-clock cutoff for one invocation, armed once and never renewed."""

    timeout_ms: int
    expires_at: float = field(default=0.0)

    @classmethod
    def arm(cls, timeout_ms: int) -> "Deadline":
        return cls(timeout_ms=timeout_ms, expires_at=time.monotonic() + timeout_ms / 1000)

    def remaining(self) -> float:
        """Seconds left, never negative."""
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at


@dataclass(frozen=True)
class RequestContext:
    request: IncomingRequest
    invocation: InvocationContext
    deadline: Deadline

    @property
    def request_id(self) -> str:
        return self.invocation.request_id


class Executable(Protocol):
    def run(self, query: Any) -> Any: ...


StageFactory = Callable[[Any, RequestContext], Executable]
