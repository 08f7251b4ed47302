"""
Data point extraction domain package.

This package contains:

- the rule evaluator for regex, JSON-path and XPath definitions
- type coercion of extracted raw text into stored data points
"""

from .coercion import coerce, parse_boolean, parse_currency, parse_date, parse_decimal
from .engine import ExtractionContext, evaluate, extract

__all__ = [
    "ExtractionContext",
    "coerce",
    "evaluate",
    "extract",
    "parse_boolean",
    "parse_currency",
    "parse_date",
    "parse_decimal",
]
