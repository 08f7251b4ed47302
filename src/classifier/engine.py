"""
Rule-based Classifier
=====================

Scores raw document text against compiled classification candidates.

A candidate's score is the share of its patterns that match somewhere in the
text plus a priority bonus (``priority / 100``). Candidates without any hit
are not scored. The strictly highest score wins and ties keep the candidate
seen first, so the caller's candidate order must be stable.
"""

from __future__ import annotations

from typing import Iterable

import structlog

from common.models import ClassificationResult
from .rules import CompiledCandidate

log = structlog.get_logger(__name__)


def score_candidate(text: str, candidate: CompiledCandidate) -> float | None:
    """Return the candidate's score, or None when no pattern matches."""
    total = len(candidate.patterns)
    if total == 0:
        return None
    hits = sum(1 for pattern in candidate.patterns if pattern.search(text))
    if hits == 0:
        return None
    return hits / total + candidate.classification.priority / 100.0


def classify(
    text: str, candidates: Iterable[CompiledCandidate]
) -> ClassificationResult | None:
    """Pick the best-scoring candidate for ``text``; None when nothing matches."""
    best: ClassificationResult | None = None
    for candidate in candidates:
        score = score_candidate(text, candidate)
        if score is None:
            continue
        if best is None or score > best.score:
            best = ClassificationResult(candidate.classification, score)
    return best


def passes_threshold(result: ClassificationResult | None) -> bool:
    """True when a result exists and reaches its classification's threshold."""
    return result is not None and result.score >= result.classification.threshold
