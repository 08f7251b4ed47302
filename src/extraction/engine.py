"""
Rule-based Data Point Extraction
================================

Evaluates one ``DataPointDefinition`` against a document and reports the
result as a ``RuleOutcome``:

- ``MATCHED`` with an ``ExtractedValue`` carrying the raw text (and the span
  for regex rules);
- ``NO_MATCH`` when the rule is fine but finds nothing, or when the input it
  needs (JSON or XML) is not available;
- ``INVALID_RULE`` when the expression cannot be compiled or evaluated.

Evaluation never raises. Each rule type has exactly one evaluator, and the
dispatch table covers every ``RuleType`` member.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Callable

import structlog
from jsonpath_ng.ext import parse as parse_jsonpath
from lxml import etree

from common.models import (
    DataPointDefinition,
    ExtractedValue,
    RuleOutcome,
    RuleType,
)

log = structlog.get_logger(__name__)


def try_parse_json(text: str | None) -> Any:
    """Parse ``text`` as JSON, returning None when it is not JSON."""
    if not text:
        return None
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        return None


def try_parse_xml(text: str | None) -> etree._Element | None:
    """Parse ``text`` as XML with entity resolution and network access disabled."""
    if not text or not text.lstrip().startswith("<"):
        return None
    parser = etree.XMLParser(resolve_entities=False, no_network=True)
    try:
        return etree.fromstring(text.strip().encode("utf-8"), parser)
    except (etree.XMLSyntaxError, ValueError):
        return None


@dataclass(frozen=True)
class ExtractionContext:
    """Raw text plus best-effort JSON and XML views of the same text."""

    text: str | None = None
    json_data: Any = None
    xml_root: Any = None

    @classmethod
    def from_text(cls, text: str | None) -> ExtractionContext:
        return cls(text=text, json_data=try_parse_json(text), xml_root=try_parse_xml(text))


def _evaluate_regex(expression: str, ctx: ExtractionContext) -> RuleOutcome:
    if not ctx.text:
        return RuleOutcome.no_match()
    try:
        pattern = re.compile(expression, re.MULTILINE)
    except re.error as e:
        return RuleOutcome.invalid(f"invalid regex: {e}")

    match = pattern.search(ctx.text)
    if match is None:
        return RuleOutcome.no_match()

    raw = match.group(0)
    if pattern.groups >= 1 and match.group(1) is not None:
        raw = match.group(1)
    # span_end is the index of the last matched character
    span_end = max(match.start(), match.end() - 1)
    return RuleOutcome.matched(
        ExtractedValue(raw=raw, span_start=match.start(), span_end=span_end)
    )


def _stringify_json(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def _evaluate_json_path(expression: str, ctx: ExtractionContext) -> RuleOutcome:
    if ctx.json_data is None:
        return RuleOutcome.no_match()
    try:
        path = parse_jsonpath(expression)
    except Exception as e:
        return RuleOutcome.invalid(f"invalid JSON path: {e}")

    matches = [m.value for m in path.find(ctx.json_data)]
    if not matches:
        return RuleOutcome.no_match()
    value = matches[0] if len(matches) == 1 else matches
    if value is None:
        return RuleOutcome.no_match()
    return RuleOutcome.matched(ExtractedValue(raw=_stringify_json(value)))


def _xpath_string(result: Any) -> str:
    """Render an XPath result the way XPath's string() conversion does."""
    if isinstance(result, list):
        if not result:
            return ""
        first = result[0]
        if isinstance(first, etree._Element):
            return first.xpath("string()")
        return str(first)
    if isinstance(result, bool):
        return "true" if result else "false"
    if isinstance(result, float):
        if result.is_integer():
            return str(int(result))
        return repr(result)
    return str(result)


def _evaluate_xpath(expression: str, ctx: ExtractionContext) -> RuleOutcome:
    if ctx.xml_root is None:
        return RuleOutcome.no_match()
    try:
        result = ctx.xml_root.xpath(expression)
    except etree.XPathError as e:
        return RuleOutcome.invalid(f"invalid XPath: {e}")

    value = _xpath_string(result)
    if not value.strip():
        return RuleOutcome.no_match()
    return RuleOutcome.matched(ExtractedValue(raw=value))


EVALUATORS: dict[RuleType, Callable[[str, ExtractionContext], RuleOutcome]] = {
    RuleType.REGEX: _evaluate_regex,
    RuleType.JSON_PATH: _evaluate_json_path,
    RuleType.XPATH: _evaluate_xpath,
}


def evaluate(definition: DataPointDefinition, ctx: ExtractionContext) -> RuleOutcome:
    """Evaluate ``definition`` against ``ctx``; never raises."""
    evaluator = EVALUATORS.get(definition.rule_type)
    if evaluator is None:
        return RuleOutcome.invalid(f"unsupported rule type: {definition.rule_type!r}")
    try:
        return evaluator(definition.expression, ctx)
    except Exception as e:
        log.debug(
            "Rule evaluation raised",
            definition_id=definition.id,
            rule_type=str(definition.rule_type),
            error=str(e),
        )
        return RuleOutcome.invalid(f"evaluation failed: {e}")


def extract(
    definition: DataPointDefinition, ctx: ExtractionContext
) -> ExtractedValue | None:
    """Return the extracted value for ``definition``, or None."""
    return evaluate(definition, ctx).value
