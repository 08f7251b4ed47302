"""Extractive summarization of raw document text."""

from .tfidf import score_sentences, split_sentences, summarize, tokenize

__all__ = ["score_sentences", "split_sentences", "summarize", "tokenize"]
