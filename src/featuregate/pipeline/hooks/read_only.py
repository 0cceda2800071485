"""Read-only hook: freezes the catalog and flag table."""

from __future__ import annotations

from typing import TYPE_CHECKING

from featuregate.pipeline.hook import BeforeHookResult, HookFailure, Operation, hook

if TYPE_CHECKING:
    from featuregate.pipeline.context import HookContext
    from featuregate.pipeline.hook import OperationArgs


@hook(phase="before", operations=[op for op in Operation if op.is_mutation])
def read_only(args: OperationArgs, ctx: HookContext) -> BeforeHookResult[None]:
    """Reject every write with 503 while maintenance is in progress."""
    return BeforeHookResult(error=HookFailure("Feature registry is read-only", 503))
