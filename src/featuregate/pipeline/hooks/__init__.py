"""Ready-made hooks.

Reference them from featuregate.yaml by import path, e.g.
``featuregate.pipeline.hooks.audit_log``.
"""

from featuregate.pipeline.hooks.audit_log import audit_log
from featuregate.pipeline.hooks.normalize_name import normalize_feature_name
from featuregate.pipeline.hooks.read_only import read_only

__all__ = [
    "audit_log",
    "normalize_feature_name",
    "read_only",
]
