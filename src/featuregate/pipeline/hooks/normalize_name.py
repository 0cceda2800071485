"""Feature name normalization hook.

Trims and lowercases the slug of a new feature and rejects names that are not
URL-safe slugs.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from featuregate.pipeline.hook import BeforeHookResult, HookFailure, Operation, hook

if TYPE_CHECKING:
    from featuregate.models import CreateFeatureInput
    from featuregate.pipeline.context import HookContext
    from featuregate.pipeline.hook import CreateFeatureArgs

logger = logging.getLogger(__name__)

NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


@hook(phase="before", operations=[Operation.CREATE_FEATURE])
def normalize_feature_name(
    args: CreateFeatureArgs, ctx: HookContext
) -> BeforeHookResult[CreateFeatureInput | dict[str, Any]]:
    """Rewrite ``input.name`` to its normalized slug.

    A payload without a string name is passed through untouched; the main
    logic reports it as invalid input.

    Returns:
        Rewritten input, or a 400 error if the slug is invalid
    """
    payload = args.input
    raw = payload.get("name") if isinstance(payload, dict) else payload.name
    if not isinstance(raw, str):
        return BeforeHookResult()

    name = raw.strip().lower()
    if not NAME_PATTERN.match(name):
        return BeforeHookResult(
            error=HookFailure(
                "Feature name must start with a letter or digit and contain only a-z, 0-9, '-' and '_'",
                400,
            )
        )
    if name != raw:
        logger.debug("Normalized feature name %r -> %r", raw, name)
    if isinstance(payload, dict):
        return BeforeHookResult(data={**payload, "name": name})
    return BeforeHookResult(data=payload.model_copy(update={"name": name}))
