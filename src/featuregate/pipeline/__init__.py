"""Hook pipeline for featuregate operations.

Every operation runs as before-hook -> main logic -> after-hook:

    before(args, ctx)          -> BeforeHookResult(data?, error?, skip?)
    after(result, args, ctx)   -> AfterHookResult(data?, error?)

Before: error short-circuits (default 400); skip returns ``data``; otherwise
``data`` replaces the primary input.
After: error > replacement data > original result (error default 500).
"""

from featuregate.pipeline.context import HookContext
from featuregate.pipeline.executor import HookPipeline, run_after, run_before
from featuregate.pipeline.hook import (
    AfterHookResult,
    BeforeHookResult,
    HookFailure,
    HookSpec,
    HookTable,
    Operation,
    hook,
)

__all__ = [
    "AfterHookResult",
    "BeforeHookResult",
    "HookContext",
    "HookFailure",
    "HookPipeline",
    "HookSpec",
    "HookTable",
    "Operation",
    "hook",
    "run_after",
    "run_before",
]
