"""
Rule Compiler
=============

Turns stored classification patterns into compiled, directly evaluable
matchers and bundles them into an immutable ``RuleSet`` snapshot.

Invalid patterns are dropped silently (logged, never raised), and a
classification left without any valid pattern is not a candidate at all.
Every pattern is compiled in multiline mode; admin-supplied flags are added
on top of that.

The ``RuleCache`` shares one snapshot between concurrent document workers.
Snapshots are never mutated: a refresh swaps in a brand new ``RuleSet``.
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from typing import Iterable

import structlog

from common.models import UNDEFINED_CLASSIFICATION, Classification, PatternSpec
from common.stores import ConfigurationStore

log = structlog.get_logger(__name__)

BASE_FLAGS = re.MULTILINE

_LETTER_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
}

_NAMED_FLAGS = {
    "case_insensitive": re.IGNORECASE,
    "ignorecase": re.IGNORECASE,
    "multiline": re.MULTILINE,
    "dotall": re.DOTALL,
    "comments": re.VERBOSE,
    "verbose": re.VERBOSE,
}

_FLAG_SEPARATORS = re.compile(r"[\s,|]+")


def parse_flags(flags: str | None) -> int:
    """
    Convert a stored flags string into ``re`` flags.

    Accepts letter runs (``"im"``) and long names (``"CASE_INSENSITIVE"``)
    separated by commas, pipes or whitespace. Raises ValueError on an unknown
    token.
    """
    value = BASE_FLAGS
    if not flags:
        return value
    for token in _FLAG_SEPARATORS.split(flags.strip()):
        if not token:
            continue
        named = _NAMED_FLAGS.get(token.lower())
        if named is not None:
            value |= named
            continue
        if all(ch in _LETTER_FLAGS for ch in token):
            for ch in token:
                value |= _LETTER_FLAGS[ch]
            continue
        raise ValueError(f"Unknown pattern flag: {token!r}")
    return value


def compile_pattern(spec: PatternSpec) -> re.Pattern | None:
    """Compile one pattern with its flags; None when pattern or flags are invalid."""
    try:
        return re.compile(spec.pattern, parse_flags(spec.flags))
    except Exception as e:
        log.warning(
            "Dropping invalid classification pattern",
            pattern_id=spec.id,
            pattern=spec.pattern,
            flags=spec.flags,
            error=str(e),
        )
        return None


@dataclass(frozen=True)
class CompiledCandidate:
    classification: Classification
    patterns: tuple[re.Pattern, ...]


@dataclass(frozen=True)
class RuleSet:
    """Immutable snapshot of compiled classification rules."""

    candidates: tuple[CompiledCandidate, ...]
    fallback: Classification | None

    def candidate_names(self) -> list[str]:
        return [c.classification.name for c in self.candidates]


def compile_candidates(
    config: Iterable[tuple[Classification, Iterable[PatternSpec]]],
) -> tuple[CompiledCandidate, ...]:
    """
    Compile every classification's patterns.

    Candidates come back in ascending classification id so that scoring ties
    resolve the same way on every run.
    """
    compiled = []
    for classification, specs in config:
        patterns = tuple(
            pattern
            for pattern in (compile_pattern(spec) for spec in specs)
            if pattern is not None
        )
        if not patterns:
            log.debug(
                "Classification has no valid patterns; excluded from candidacy",
                classification=classification.name,
            )
            continue
        compiled.append(CompiledCandidate(classification, patterns))
    compiled.sort(key=lambda candidate: candidate.classification.id)
    return tuple(compiled)


def load_rule_set(store: ConfigurationStore) -> RuleSet:
    """Load and compile the full classification configuration."""
    classifications = store.load_classifications()
    candidates = compile_candidates(
        (classification, store.load_patterns(classification.id))
        for classification in classifications
    )
    fallback = store.resolve_by_name(UNDEFINED_CLASSIFICATION)
    log.info(
        "Loaded classification rules",
        classifications=len(classifications),
        candidates=len(candidates),
        fallback_present=fallback is not None,
    )
    return RuleSet(candidates=candidates, fallback=fallback)


class RuleCache:
    """
    Read-mostly holder of the current ``RuleSet``.

    ``snapshot()`` is safe to call from many worker threads; it loads lazily
    the first time and after ``invalidate()``.
    """

    def __init__(self, store: ConfigurationStore):
        self._store = store
        self._lock = threading.RLock()
        self._rules: RuleSet | None = None

    def refresh(self) -> RuleSet:
        """Reload and recompile the rules from the configuration store."""
        rules = load_rule_set(self._store)
        with self._lock:
            self._rules = rules
        return rules

    def invalidate(self) -> None:
        with self._lock:
            self._rules = None

    def snapshot(self) -> RuleSet:
        with self._lock:
            if self._rules is None:
                self._rules = load_rule_set(self._store)
            return self._rules
