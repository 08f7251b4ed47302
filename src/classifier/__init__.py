"""
Classification domain package.

This package contains:

- the rule compiler that turns stored patterns into an immutable rule snapshot
- the scoring classifier and the threshold gate helper
"""

from .engine import classify, passes_threshold, score_candidate
from .rules import (
    CompiledCandidate,
    RuleCache,
    RuleSet,
    compile_candidates,
    compile_pattern,
    load_rule_set,
    parse_flags,
)

__all__ = [
    "CompiledCandidate",
    "RuleCache",
    "RuleSet",
    "classify",
    "compile_candidates",
    "compile_pattern",
    "load_rule_set",
    "parse_flags",
    "passes_threshold",
    "score_candidate",
]
