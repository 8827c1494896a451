"""Reference resolution, identity matching, planning and the engine."""

from .engine import ReconciliationEngine, normalize_dataset
from .matcher import IdentityMatcher, MatchResult
from .planner import MutationPlanner, Plan, presence_status
from .resolver import AliasTable, ReferenceIndex, ReferenceResolver

__all__ = [
    "ReconciliationEngine",
    "normalize_dataset",
    "IdentityMatcher",
    "MatchResult",
    "MutationPlanner",
    "Plan",
    "presence_status",
    "AliasTable",
    "ReferenceIndex",
    "ReferenceResolver",
]
