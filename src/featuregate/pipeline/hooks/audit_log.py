"""Audit log hook.

Logs every operation outcome to the ``featuregate.audit`` logger: who did
what to which feature or principal, and how it ended.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from featuregate.pipeline.hook import hook

if TYPE_CHECKING:
    from featuregate.pipeline.context import HookContext
    from featuregate.pipeline.hook import OperationArgs
    from featuregate.results import ActionResult

audit_logger = logging.getLogger("featuregate.audit")


def describe_target(args: OperationArgs) -> str:
    """Short description of what an operation acts on."""
    parts = []
    principal = getattr(args, "principal", None)
    if principal is not None:
        parts.append(f"{principal.kind}={principal.id}")
    feature_id = getattr(args, "feature_id", None)
    if feature_id is not None:
        parts.append(f"feature={feature_id}")
    payload = getattr(args, "input", None)
    name = payload.get("name") if isinstance(payload, dict) else getattr(payload, "name", None)
    if name:
        parts.append(f"name={name}")
    return " ".join(parts) or "-"


@hook(phase="after")
def audit_log(result: ActionResult, args: OperationArgs, ctx: HookContext) -> None:
    """Record the outcome; never changes it.

    Args:
        result: Outcome of the main logic
        args: Operation arguments
        ctx: Hook context (``audit_log_level`` in extra overrides the level
            used for successful operations)
    """
    actor = ctx.user_id or "anonymous"
    target = describe_target(args)
    if result.ok:
        level = logging.getLevelName(str(ctx.get("audit_log_level", "INFO")).upper())
        audit_logger.log(
            level if isinstance(level, int) else logging.INFO,
            "%s by %s on %s: ok",
            ctx.operation.value,
            actor,
            target,
        )
    else:
        assert result.error is not None
        audit_logger.warning(
            "%s by %s on %s: failed (%d) %s",
            ctx.operation.value,
            actor,
            target,
            result.error.status,
            result.error.message,
        )
