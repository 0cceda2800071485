"""Context handed to every hook invocation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from featuregate.models import Session
    from featuregate.pipeline.hook import Operation


@dataclass
class HookContext:
    """Per-call hook context.

    Attributes:
        session: Caller's session, None when unauthenticated
        operation: Operation being executed
        extra: Additional keys supplied by the transport (request id, client
            address, ...); hooks may also stash values here for the after-hook
            of the same call
    """

    session: Session | None
    operation: Operation
    extra: dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        if key == "session":
            return self.session
        if key == "operation":
            return self.operation
        return self.extra[key]

    def get(self, key: str, default: Any = None) -> Any:
        try:
            return self[key]
        except KeyError:
            return default

    @property
    def user_id(self) -> str | None:
        """Id of the calling user, if any."""
        return self.session.user_id if self.session else None
