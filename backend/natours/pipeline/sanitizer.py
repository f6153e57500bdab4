"""
Natours Backend — Payload Sanitizer Stage
===========================================

What:  Removes query-operator keys and escapes markup in body, query and params.
How:   Two independent recursive passes, each returning a new structure:

       1. strip_operators  — drops every mapping key matching the operator
                             marker (`$gt`, `$where`, `profile.role`, ...)
       2. escape_markup    — HTML-escapes every string value and every
                             mapping key (&, <, >)

       Pass 2 runs on the output of pass 1, so a stripped key is never
       escaped.

Accepted shapes:
    dict, list, tuple, str, int, float, bool, None. Nesting deeper than
    SanitizationRule.max_depth is rejected with an operational 400. Cycles,
    non-string keys and any other type are defects and raise a
    non-operational PayloadRejectedError.

Escaping is reversible: html.unescape(escape_markup(s)) == s for every s.
"""

import html
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, FrozenSet, List, Optional, Pattern

from natours.exceptions import PayloadRejectedError
from natours.pipeline.request import PipelineRequest

logger = logging.getLogger(__name__)

SCALAR_TYPES = (int, float, bool, type(None))


@dataclass(frozen=True)
class SanitizationRule:
    """
    Declarative sanitization policy.

    Attributes:
        operator_pattern: keys matching this pattern are removed
        escape_markup:    escape string values for HTML
        max_depth:        deepest nesting accepted before rejecting
    """

    operator_pattern: Pattern[str] = field(default_factory=lambda: re.compile(r"^\$|\."))
    escape_markup: bool = True
    max_depth: int = 32


def _structural_defect(message: str, **context: Any) -> PayloadRejectedError:
    return PayloadRejectedError(
        message=message,
        status_code=400,
        is_operational=False,
        context=context,
    )


def _too_deep(max_depth: int) -> PayloadRejectedError:
    return PayloadRejectedError(
        message="Payload nesting is too deep",
        status_code=400,
        context={"max_depth": max_depth},
    )


def _walk(
    value: Any,
    on_key: Callable[[str], Optional[str]],
    on_string: Callable[[str], str],
    max_depth: int,
    depth: int = 0,
    active: FrozenSet[int] = frozenset(),
) -> Any:
    if isinstance(value, str):
        return on_string(value)
    if isinstance(value, SCALAR_TYPES):
        return value

    if depth >= max_depth:
        raise _too_deep(max_depth)
    if id(value) in active:
        raise _structural_defect("Payload contains a cyclic reference")
    active = active | {id(value)}

    if isinstance(value, dict):
        cleaned = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise _structural_defect(
                    "Payload mapping keys must be strings", key_type=type(key).__name__
                )
            new_key = on_key(key)
            if new_key is None:
                continue
            cleaned[new_key] = _walk(item, on_key, on_string, max_depth, depth + 1, active)
        return cleaned
    if isinstance(value, (list, tuple)):
        return [_walk(item, on_key, on_string, max_depth, depth + 1, active) for item in value]

    raise _structural_defect(
        "Payload contains a non-representable value", value_type=type(value).__name__
    )


def _unchanged(value: str) -> str:
    return value


def strip_operators(value: Any, rule: SanitizationRule = SanitizationRule()) -> Any:
    """Return a copy of `value` without keys matching the operator pattern."""
    removed: List[str] = []

    def keep(key: str) -> Optional[str]:
        if rule.operator_pattern.search(key):
            removed.append(key)
            return None
        return key

    cleaned = _walk(value, keep, _unchanged, rule.max_depth)
    if removed:
        logger.debug("Removed %d operator key(s) from request payload", len(removed))
    return cleaned


def escape_text(value: str) -> str:
    return html.escape(value, quote=False)


def escape_markup(value: Any, rule: SanitizationRule = SanitizationRule()) -> Any:
    """Return a copy of `value` with every string and key HTML-escaped."""
    return _walk(value, escape_text, escape_text, rule.max_depth)


class PayloadSanitizer:
    """Pipeline stage applying both passes to body, query and params."""

    name = "sanitizer"

    def __init__(self, rule: SanitizationRule = SanitizationRule()):
        self.rule = rule

    def sanitize(self, value: Any) -> Any:
        stripped = strip_operators(value, self.rule)
        if not self.rule.escape_markup:
            return stripped
        return escape_markup(stripped, self.rule)

    async def __call__(self, request: PipelineRequest) -> PipelineRequest:
        request.body = self.sanitize(request.body)
        request.query = self.sanitize(request.query)
        request.params = self.sanitize(request.params)
        return request
