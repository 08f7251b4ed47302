"""
Type coercion for extracted values.

Converts the raw text of an ``ExtractedValue`` into the typed field required
by the definition's declared ``DataType``. A value that does not parse as its
declared type is still stored, with the typed field left empty.
"""

from __future__ import annotations

import datetime as dt
import re
from decimal import Decimal, InvalidOperation

from common.models import (
    Classification,
    DataPointDefinition,
    DataType,
    ExtractedValue,
    StoredDataPoint,
)

# Tried in order; the first format that parses wins. Each format also has an
# exact shape: zero-padded fields and a title-case English month abbreviation.
DATE_FORMATS = (
    ("%Y-%m-%d", re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")),
    ("%m/%d/%Y", re.compile(r"[0-9]{2}/[0-9]{2}/[0-9]{4}")),
    ("%d %b %Y", re.compile(r"[0-9]{2} [A-Z][a-z]{2} [0-9]{4}")),
    ("%d-%m-%Y", re.compile(r"[0-9]{2}-[0-9]{2}-[0-9]{4}")),
)

DECIMAL_RE = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")

TRUE_VALUES = frozenset({"true", "yes", "1"})

_NON_CURRENCY_CHARS = re.compile(r"[^0-9.]")


def parse_decimal(raw: str) -> Decimal | None:
    """Plain decimal notation only: no whitespace, underscores or NaN/Infinity."""
    if not DECIMAL_RE.fullmatch(raw):
        return None
    try:
        value = Decimal(raw)
    except (InvalidOperation, ValueError, TypeError):
        return None
    return value if value.is_finite() else None


def parse_currency(raw: str) -> Decimal | None:
    """Keep only digits and dots (``"$1,234.56"`` -> ``1234.56``)."""
    return parse_decimal(_NON_CURRENCY_CHARS.sub("", raw))


def parse_date(raw: str) -> dt.date | None:
    for fmt, shape in DATE_FORMATS:
        if not shape.fullmatch(raw):
            continue
        try:
            return dt.datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    return None


def parse_boolean(raw: str) -> str:
    """Booleans are stored as the strings ``"true"`` / ``"false"``."""
    return "true" if raw.lower() in TRUE_VALUES else "false"


def coerce(
    definition: DataPointDefinition,
    classification: Classification,
    value: ExtractedValue,
) -> StoredDataPoint:
    """Build the stored data point for ``value`` according to its declared type."""
    fields: dict = {}
    if definition.type == DataType.NUMBER:
        fields["value_number"] = parse_decimal(value.raw)
    elif definition.type == DataType.DATE:
        fields["value_date"] = parse_date(value.raw)
    elif definition.type == DataType.CURRENCY:
        fields["value_number"] = parse_currency(value.raw)
    elif definition.type == DataType.BOOLEAN:
        fields["value_string"] = parse_boolean(value.raw)
    else:
        fields["value_string"] = value.raw

    return StoredDataPoint(
        key=definition.key,
        type=definition.type,
        classification_id=classification.id,
        definition_id=definition.id,
        confidence=value.confidence,
        page=value.page,
        span_start=value.span_start,
        span_end=value.span_end,
        **fields,
    )
