"""Before/after hook execution around an operation's main logic.

Every operation runs as::

    before hook -> main logic -> after hook

Before: an error always short-circuits (status defaults to 400); ``skip``
without error returns the hook's data as the result; otherwise the main logic
runs with the hook's data as its primary input when provided.

After: an error wins over everything (status defaults to 500), then
replacement data, then the main logic's own result.

Steps run strictly in sequence; nothing inside one call runs concurrently.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from featuregate.errors import FeatureGateError
from featuregate.pipeline.context import HookContext
from featuregate.pipeline.hook import (
    AfterHookResult,
    BeforeHookResult,
    HookFailure,
    HookSpec,
    HookTable,
    Operation,
)
from featuregate.results import ActionResult, OperationResult

if TYPE_CHECKING:
    from featuregate.models import Session
    from featuregate.pipeline.hook import AfterHookFn, BeforeHookFn, OperationArgs

logger = logging.getLogger(__name__)

DEFAULT_BEFORE_ERROR_STATUS = 400
DEFAULT_AFTER_ERROR_STATUS = 500

Action = Callable[[Any], Awaitable[Any]]


@dataclass(frozen=True)
class BeforeOutcome:
    skip: bool = False
    data: Any = None
    error: HookFailure | None = None


@dataclass(frozen=True)
class AfterOutcome:
    data: Any = None
    error: HookFailure | None = None


async def _call(fn: Callable[..., Any], *args: Any) -> Any:
    value = fn(*args)
    if inspect.isawaitable(value):
        value = await value
    return value


def _hook_name(fn: Callable[..., Any]) -> str:
    return getattr(fn, "__qualname__", None) or repr(fn)


def describe_spec(operation: Operation, spec: HookSpec) -> str:
    """Render e.g. ``createFeature[before+after]``."""
    phases = [phase for phase, fn in (("before", spec.before), ("after", spec.after)) if fn]
    return f"{operation.value}[{'+'.join(phases)}]"


async def run_before(
    hook: BeforeHookFn | None,
    args: OperationArgs,
    context: HookContext,
) -> BeforeOutcome:
    """Run a before-hook and normalize its result.

    Args:
        hook: Before-hook, or None for pass-through
        args: Operation arguments
        context: Hook context

    Returns:
        BeforeOutcome; ``skip`` is forced when the hook reports an error
    """
    if hook is None:
        return BeforeOutcome()

    try:
        result = BeforeHookResult.coerce(await _call(hook, args, context))
    except Exception as e:
        logger.error(
            "Before hook '%s' for %s failed: %s: %s",
            _hook_name(hook),
            context.operation.value,
            type(e).__name__,
            e,
        )
        return BeforeOutcome(skip=True, error=HookFailure("Before hook failed", 500))

    if result.error is not None:
        logger.debug("Before hook rejected %s: %s", context.operation.value, result.error.message)
        return BeforeOutcome(skip=True, error=result.error)

    return BeforeOutcome(skip=result.skip, data=result.data)


async def run_after(
    hook: AfterHookFn | None,
    result: ActionResult,
    args: OperationArgs,
    context: HookContext,
) -> AfterOutcome:
    """Run an after-hook with the tagged result of the main logic.

    Args:
        hook: After-hook, or None to keep the original result
        result: Main logic outcome
        args: Operation arguments as used by the main logic
        context: Hook context

    Returns:
        AfterOutcome with optional replacement data or error
    """
    if hook is None:
        return AfterOutcome()

    try:
        outcome = AfterHookResult.coerce(await _call(hook, result, args, context))
    except Exception as e:
        logger.error(
            "After hook '%s' for %s failed: %s: %s",
            _hook_name(hook),
            context.operation.value,
            type(e).__name__,
            e,
        )
        return AfterOutcome(error=HookFailure("After hook failed", 500))

    return AfterOutcome(data=outcome.data, error=outcome.error)


class HookPipeline:
    """Runs operations through their before/after hooks.

    Attributes:
        hooks: Hook table owned by this pipeline
    """

    def __init__(self, hooks: HookTable | None = None) -> None:
        self.hooks = hooks or HookTable()
        if len(self.hooks):
            logger.info("Hook pipeline: %s", ", ".join(describe_spec(op, spec) for op, spec in self.hooks))

    async def run(
        self,
        args: OperationArgs,
        action: Action,
        session: Session | None,
        extra: dict[str, Any] | None = None,
    ) -> OperationResult:
        """Execute one operation.

        Args:
            args: Operation arguments; ``args.operation`` selects the hooks
            action: Main logic, called with the (possibly rewritten) args;
                reports failures by raising FeatureGateError
            session: Caller's session
            extra: Additional HookContext keys

        Returns:
            Final OperationResult after precedence rules
        """
        operation = args.operation
        spec = self.hooks.get(operation)
        context = HookContext(session=session, operation=operation, extra=dict(extra or {}))

        before = await run_before(spec.before if spec else None, args, context)
        if before.skip:
            if before.error is not None:
                return OperationResult.from_error(before.error.to_error(DEFAULT_BEFORE_ERROR_STATUS))
            logger.debug("Before hook skipped %s", operation.value)
            return OperationResult.success(before.data if before.data is not None else args.skip_default())

        try:
            if before.data is not None:
                args = args.with_input(before.data)
            result = ActionResult.success(await action(args))
        except FeatureGateError as e:
            logger.debug("%s failed: %s (%d)", operation.value, e.message, e.status)
            result = ActionResult.failure(e)

        after = await run_after(spec.after if spec else None, result, args, context)
        if after.error is not None:
            logger.debug("After hook replaced %s result with error: %s", operation.value, after.error.message)
            return OperationResult.from_error(after.error.to_error(DEFAULT_AFTER_ERROR_STATUS))
        if after.data is not None:
            return OperationResult.success(after.data)
        return OperationResult.from_action(result)
