"""
Extractive TF-IDF Summarizer
============================

Picks the most informative sentences of a document and returns them in their
original order. Each sentence is treated as a "document" for TF-IDF; the first
three sentences get a flat bonus because documents tend to lead with their
point. Output depends only on the input text.
"""

from __future__ import annotations

import math
import re
from collections import Counter

SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
NON_TOKEN_CHARS_RE = re.compile(r"[^a-z0-9\s]")

MAX_SENTENCES_CONSIDERED = 500
MIN_TOKEN_LENGTH = 3
LEAD_SENTENCES = 3
LEAD_BONUS = 0.5


def split_sentences(text: str) -> list[str]:
    sentences = [s for s in SENTENCE_SPLIT_RE.split(text) if s.strip()]
    return sentences[:MAX_SENTENCES_CONSIDERED]


def tokenize(sentence: str) -> list[str]:
    cleaned = NON_TOKEN_CHARS_RE.sub(" ", sentence.lower())
    return [token for token in cleaned.split() if len(token) >= MIN_TOKEN_LENGTH]


def score_sentences(sentences: list[str]) -> list[float]:
    tokenized = [tokenize(sentence) for sentence in sentences]
    doc_freq: Counter[str] = Counter()
    for tokens in tokenized:
        doc_freq.update(set(tokens))

    n = float(len(sentences))
    scores = []
    for index, tokens in enumerate(tokenized):
        counts = Counter(tokens)
        # Summed per occurrence, so repeated terms weigh in once per repetition.
        score = sum(
            (counts[token] / len(tokens)) * math.log(n / doc_freq[token])
            for token in tokens
        )
        if index < LEAD_SENTENCES:
            score += LEAD_BONUS
        scores.append(score)
    return scores


def summarize(text: str, max_sentences: int = 5) -> str:
    """Return the ``max_sentences`` best sentences of ``text`` in original order."""
    if max_sentences < 1:
        return ""
    sentences = split_sentences(text)
    if len(sentences) <= max_sentences:
        return " ".join(sentences)

    scores = score_sentences(sentences)
    # sorted() is stable: equal scores keep ascending sentence order.
    ranked = sorted(range(len(sentences)), key=lambda i: -scores[i])
    selected = sorted(ranked[:max_sentences])
    return " ".join(sentences[i] for i in selected)
