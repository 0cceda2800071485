"""Hook specification, per-operation arguments and the @hook decorator.

Each operation has its own frozen arguments dataclass. Before-hooks receive
``(args, context)``; after-hooks receive ``(result, args, context)``. A hook
may be sync or async and may return a result dataclass, an equivalent dict,
or None (no opinion).
"""

from __future__ import annotations

import dataclasses
from collections.abc import Awaitable, Callable, Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Generic, Literal, TypeVar

from pydantic import BaseModel, ValidationError

from featuregate.errors import HookError
from featuregate.models import (
    IMMUTABLE_FIELDS,
    CreateFeatureInput,
    Principal,
    SetFlagInput,
    UpdateFeatureInput,
)

if TYPE_CHECKING:
    from featuregate.pipeline.context import HookContext
    from featuregate.results import ActionResult

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)
HookPhase = Literal["before", "after"]


class Operation(str, Enum):
    """The nine registry operations."""

    CREATE_FEATURE = "createFeature"
    LIST_FEATURES = "listFeatures"
    UPDATE_FEATURE = "updateFeature"
    DELETE_FEATURE = "deleteFeature"
    TOGGLE_FEATURE = "toggleFeature"
    SET_FEATURE_FLAG = "setFeatureFlag"
    REMOVE_FEATURE_FLAG = "removeFeatureFlag"
    GET_FEATURE_FLAGS = "getFeatureFlags"
    GET_AVAILABLE_FEATURES = "getAvailableFeatures"

    @property
    def is_mutation(self) -> bool:
        return self in _MUTATIONS


_MUTATIONS = frozenset(
    {
        Operation.CREATE_FEATURE,
        Operation.UPDATE_FEATURE,
        Operation.DELETE_FEATURE,
        Operation.TOGGLE_FEATURE,
        Operation.SET_FEATURE_FLAG,
        Operation.REMOVE_FEATURE_FLAG,
    }
)


# --- per-operation arguments ---------------------------------------------


def coerce_input(model: type[M], data: Any) -> M | dict[str, Any]:
    """Validate ``data`` into ``model``, keeping the raw dict when it does not validate.

    The main logic re-validates and reports InvalidInput once the caller is
    authorized, so hooks always see the payload as it was sent.
    """
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data or {})
    except ValidationError:
        return dict(data) if isinstance(data, dict) else {}


def coerce_update(data: Any) -> UpdateFeatureInput | dict[str, Any]:
    """Like coerce_input, but keeps dicts naming immutable fields raw so they are rejected."""
    if isinstance(data, dict) and IMMUTABLE_FIELDS & set(data):
        return dict(data)
    return coerce_input(UpdateFeatureInput, data)


@dataclass(frozen=True)
class _Args:
    operation: ClassVar[Operation]
    # Name of the field a before-hook's ``data`` replaces, None if the
    # operation has no primary input
    input_field: ClassVar[str | None] = None
    input_model: ClassVar[type[BaseModel] | None] = None
    # Result returned when a before-hook skips without providing data
    skip_default: ClassVar[Callable[[], Any]] = staticmethod(lambda: None)

    def with_input(self, data: Any) -> Any:
        """Return a copy with the primary input replaced by ``data``.

        Dicts are validated into the input model when possible; invalid data
        is kept raw and rejected by the main logic.
        """
        if self.input_field is None:
            return self
        if self.input_model is not None:
            data = coerce_input(self.input_model, data)
        return dataclasses.replace(self, **{self.input_field: data})


@dataclass(frozen=True)
class CreateFeatureArgs(_Args):
    input: CreateFeatureInput | dict[str, Any]
    operation: ClassVar[Operation] = Operation.CREATE_FEATURE
    input_field: ClassVar[str | None] = "input"
    input_model: ClassVar[type[BaseModel] | None] = CreateFeatureInput


@dataclass(frozen=True)
class ListFeaturesArgs(_Args):
    operation: ClassVar[Operation] = Operation.LIST_FEATURES
    skip_default: ClassVar[Callable[[], Any]] = staticmethod(list)


@dataclass(frozen=True)
class UpdateFeatureArgs(_Args):
    feature_id: str
    input: UpdateFeatureInput | dict[str, Any]
    operation: ClassVar[Operation] = Operation.UPDATE_FEATURE
    input_field: ClassVar[str | None] = "input"
    input_model: ClassVar[type[BaseModel] | None] = UpdateFeatureInput

    def with_input(self, data: Any) -> UpdateFeatureArgs:
        return dataclasses.replace(self, input=coerce_update(data))


@dataclass(frozen=True)
class DeleteFeatureArgs(_Args):
    feature_id: str
    operation: ClassVar[Operation] = Operation.DELETE_FEATURE
    skip_default: ClassVar[Callable[[], Any]] = staticmethod(lambda: {"success": True})


@dataclass(frozen=True)
class ToggleFeatureArgs(_Args):
    feature_id: str
    # Requested switch value, validated as a boolean by the main logic
    active: Any
    operation: ClassVar[Operation] = Operation.TOGGLE_FEATURE
    input_field: ClassVar[str | None] = "active"


@dataclass(frozen=True)
class SetFlagArgs(_Args):
    principal: Principal
    feature_id: str
    input: SetFlagInput | dict[str, Any]
    operation: ClassVar[Operation] = Operation.SET_FEATURE_FLAG
    input_field: ClassVar[str | None] = "input"
    input_model: ClassVar[type[BaseModel] | None] = SetFlagInput


@dataclass(frozen=True)
class RemoveFlagArgs(_Args):
    principal: Principal
    feature_id: str
    operation: ClassVar[Operation] = Operation.REMOVE_FEATURE_FLAG
    skip_default: ClassVar[Callable[[], Any]] = staticmethod(lambda: {"success": True})


@dataclass(frozen=True)
class GetFlagsArgs(_Args):
    principal: Principal
    operation: ClassVar[Operation] = Operation.GET_FEATURE_FLAGS
    skip_default: ClassVar[Callable[[], Any]] = staticmethod(list)


@dataclass(frozen=True)
class GetAvailableArgs(_Args):
    operation: ClassVar[Operation] = Operation.GET_AVAILABLE_FEATURES
    skip_default: ClassVar[Callable[[], Any]] = staticmethod(list)


OperationArgs = (
    CreateFeatureArgs
    | ListFeaturesArgs
    | UpdateFeatureArgs
    | DeleteFeatureArgs
    | ToggleFeatureArgs
    | SetFlagArgs
    | RemoveFlagArgs
    | GetFlagsArgs
    | GetAvailableArgs
)


# --- hook results ----------------------------------------------------------


@dataclass(frozen=True)
class HookFailure:
    """Error reported by a hook. ``status`` None means the phase default."""

    message: str
    status: int | None = None

    @classmethod
    def coerce(cls, value: Any) -> HookFailure | None:
        if value is None or isinstance(value, HookFailure):
            return value
        if isinstance(value, str):
            return cls(value)
        if isinstance(value, dict):
            return cls(str(value.get("message", "Hook error")), value.get("status"))
        return cls(str(value))

    def to_error(self, default_status: int) -> HookError:
        """HookError carrying this failure, with the phase default when no status is set."""
        return HookError(self.message, self.status or default_status)


@dataclass(frozen=True)
class BeforeHookResult(Generic[T]):
    """What a before-hook returns.

    Attributes:
        data: Replacement primary input, or the result when skipping
        error: Error to report; always short-circuits
        skip: Bypass the main action and return ``data``
    """

    data: T | None = None
    error: HookFailure | None = None
    skip: bool = False

    @classmethod
    def coerce(cls, value: Any) -> BeforeHookResult[Any]:
        if value is None:
            return cls()
        if isinstance(value, BeforeHookResult):
            return value
        if isinstance(value, dict):
            return cls(
                data=value.get("data"),
                error=HookFailure.coerce(value.get("error")),
                skip=bool(value.get("skip", False)),
            )
        raise TypeError(f"Before hook returned {type(value).__name__}, expected BeforeHookResult")


@dataclass(frozen=True)
class AfterHookResult(Generic[T]):
    """What an after-hook returns: replacement data or an error."""

    data: T | None = None
    error: HookFailure | None = None

    @classmethod
    def coerce(cls, value: Any) -> AfterHookResult[Any]:
        if value is None:
            return cls()
        if isinstance(value, AfterHookResult):
            return value
        if isinstance(value, dict):
            return cls(data=value.get("data"), error=HookFailure.coerce(value.get("error")))
        raise TypeError(f"After hook returned {type(value).__name__}, expected AfterHookResult")


BeforeHookFn = Callable[["OperationArgs", "HookContext"], Any | Awaitable[Any]]
AfterHookFn = Callable[["ActionResult", "OperationArgs", "HookContext"], Any | Awaitable[Any]]


# --- decorator and table -----------------------------------------------------


@dataclass(frozen=True)
class HookInfo:
    """Declaration attached to a function by @hook.

    Attributes:
        name: Hook name (function name)
        phase: ``before`` or ``after``
        operations: Operations the hook may be attached to
    """

    name: str
    phase: HookPhase
    operations: frozenset[Operation]


def hook(
    *,
    phase: HookPhase,
    operations: Iterable[Operation] | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Declare a function as a before- or after-hook.

    The declaration is only metadata; nothing is registered. HookTable uses it
    to reject a hook placed in the wrong phase or on the wrong operation.

    Example:
        @hook(phase="before", operations=[Operation.CREATE_FEATURE])
        def normalize_feature_name(args, ctx):
            ...
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        fn._hook_info = HookInfo(  # type: ignore[attr-defined]
            name=fn.__name__,
            phase=phase,
            operations=frozenset(operations) if operations else frozenset(Operation),
        )
        return fn

    return decorator


def get_hook_info(fn: Callable[..., Any]) -> HookInfo | None:
    return getattr(fn, "_hook_info", None)


@dataclass
class HookSpec:
    """Optional before/after pair attached to one operation."""

    before: BeforeHookFn | None = None
    after: AfterHookFn | None = None


@dataclass
class HookTable:
    """Mapping from operation to its hooks, owned by one pipeline."""

    _specs: dict[Operation, HookSpec] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, mapping: dict[Operation | str, dict[str, Any] | HookSpec] | None) -> HookTable:
        """Build a table from ``{operation: {"before": fn, "after": fn}}``.

        Raises:
            ValueError: Unknown operation name or misplaced hook
        """
        table = cls()
        for key, entry in (mapping or {}).items():
            if isinstance(entry, HookSpec):
                table.register(key, before=entry.before, after=entry.after)
            else:
                table.register(key, before=entry.get("before"), after=entry.get("after"))
        return table

    def register(
        self,
        operation: Operation | str,
        *,
        before: BeforeHookFn | None = None,
        after: AfterHookFn | None = None,
    ) -> None:
        """Attach hooks to an operation, replacing any previous ones per phase."""
        op = Operation(operation)
        for phase, fn in (("before", before), ("after", after)):
            info = get_hook_info(fn) if fn is not None else None
            if info is None:
                continue
            if info.phase != phase:
                raise ValueError(f"Hook '{info.name}' is a {info.phase} hook, not {phase}")
            if op not in info.operations:
                raise ValueError(f"Hook '{info.name}' cannot be attached to {op.value}")
        spec = self._specs.setdefault(op, HookSpec())
        if before is not None:
            spec.before = before
        if after is not None:
            spec.after = after

    def get(self, operation: Operation) -> HookSpec | None:
        return self._specs.get(operation)

    def __iter__(self) -> Iterator[tuple[Operation, HookSpec]]:
        return iter(sorted(self._specs.items(), key=lambda item: list(Operation).index(item[0])))

    def __len__(self) -> int:
        return len(self._specs)
