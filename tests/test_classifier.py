import math

import pytest

from classifier.engine import classify, passes_threshold, score_candidate
from classifier.rules import compile_candidates
from common.models import Classification, ClassificationResult, PatternSpec

INVOICE = Classification(id=1, name="Invoice", priority=10, threshold=0.3)


def _candidates(*config):
    return compile_candidates(
        (classification, [PatternSpec(p) for p in patterns])
        for classification, patterns in config
    )


def test_invoice_scenario_wins_with_priority_bonus():
    candidates = _candidates((INVOICE, ["invoice"]))

    result = classify("This is an invoice for services", candidates)

    assert result.classification == INVOICE
    assert result.score == pytest.approx(1.10)
    assert passes_threshold(result)


def test_no_match_returns_none():
    candidates = _candidates((INVOICE, ["invoice"]))

    result = classify("no match here", candidates)

    assert result is None
    assert not passes_threshold(result)


def test_score_is_share_of_hits_plus_priority():
    contract = Classification(id=2, name="Contract", priority=5)
    (candidate,) = _candidates((contract, ["agreement", "party", "signature", "clause"]))

    score = score_candidate("This agreement binds each party.", candidate)

    assert score == pytest.approx(2 / 4 + 0.05)
    assert math.isfinite(score) and score >= 0


def test_highest_score_wins():
    receipt = Classification(id=2, name="Receipt")
    candidates = _candidates(
        (INVOICE, ["invoice", "due date"]),
        (receipt, ["receipt", "paid"]),
    )

    result = classify("receipt: paid in full. See invoice 12.", candidates)

    assert result.classification == receipt
    assert result.score == pytest.approx(1.0)


def test_ties_keep_first_candidate_by_id():
    first = Classification(id=3, name="First")
    second = Classification(id=7, name="Second")
    candidates = _candidates((second, ["shared"]), (first, ["shared"]))

    result = classify("shared words", candidates)

    assert result.classification == first


def test_threshold_gate():
    strict = Classification(id=4, name="Strict", threshold=0.8)

    assert not passes_threshold(ClassificationResult(strict, 0.5))
    assert passes_threshold(ClassificationResult(strict, 0.8))
