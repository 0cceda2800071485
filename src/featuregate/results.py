"""Result values passed between the pipeline, hooks and transports."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from featuregate.errors import FeatureGateError


def to_plain(value: Any) -> Any:
    """Convert models (and containers of models) to plain JSON-ready data."""
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, mode="json")
    if isinstance(value, list | tuple):
        return [to_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: to_plain(v) for k, v in value.items()}
    return value


@dataclass(frozen=True)
class ActionResult:
    """Outcome of an operation's main logic, tagged success or error.

    This is what after-hooks receive.
    """

    data: Any = None
    error: FeatureGateError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: Any) -> ActionResult:
        return cls(data=data)

    @classmethod
    def failure(cls, error: FeatureGateError) -> ActionResult:
        return cls(error=error)


@dataclass(frozen=True)
class OperationResult:
    """Final result of an operation: ``{data}`` or ``{error, status}``.

    Attributes:
        data: Result payload (models are kept as-is until ``to_dict``)
        error: Error message, None on success
        status: Status code, 200 on success
    """

    data: Any = None
    error: str | None = None
    status: int = 200

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: Any) -> OperationResult:
        return cls(data=data)

    @classmethod
    def failure(cls, message: str, status: int) -> OperationResult:
        return cls(error=message, status=status)

    @classmethod
    def from_error(cls, error: FeatureGateError) -> OperationResult:
        return cls.failure(error.message, error.status)

    @classmethod
    def from_action(cls, result: ActionResult) -> OperationResult:
        if result.error is not None:
            return cls.from_error(result.error)
        return cls.success(result.data)

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"error": self.error, "status": self.status}
        return {"data": to_plain(self.data)}
