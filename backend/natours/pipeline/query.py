"""
Bracket-aware query string parsing.

Turns decoded (key, value) pairs into nested structures:

    k=1&k=2            → {"k": ["1", "2"]}
    price[gte]=500     → {"price": {"gte": "500"}}
    tags[]=a&tags[]=b  → {"tags": ["a", "b"]}

Used for the query string and for urlencoded form bodies, so operator keys
hidden inside brackets (`price[$gt]=0`) become real mapping keys the
sanitizer can see.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Tuple
from urllib.parse import parse_qsl

logger = logging.getLogger(__name__)

MAX_DEPTH = 5

_SEGMENT = re.compile(r"\[([^\[\]]*)\]")


def split_key(key: str, depth: int = MAX_DEPTH) -> List[str]:
    """
    Split `a[b][c]` into ["a", "b", "c"].

    Keys without a well-formed bracket suffix are returned whole. Segments
    beyond `depth` stay together as one literal trailing segment.
    """
    bracket = key.find("[")
    if bracket <= 0:
        return [key]

    parent, rest = key[:bracket], key[bracket:]
    segments = [parent]
    position = 0
    while position < len(rest):
        match = _SEGMENT.match(rest, position)
        if match is None:
            return [key]
        if len(segments) > depth:
            segments.append(rest[position:])
            return segments
        segments.append(match.group(1))
        position = match.end()
    return segments


def _merge_leaf(target: Dict[str, Any], name: str, value: str) -> None:
    existing = target.get(name)
    if existing is None:
        target[name] = value
    elif isinstance(existing, list):
        existing.append(value)
    elif isinstance(existing, dict):
        logger.debug("Query key %r already holds a mapping; dropping scalar value", name)
    else:
        target[name] = [existing, value]


def _assign(target: Dict[str, Any], segments: List[str], value: str) -> None:
    head, rest = segments[0], segments[1:]
    if not rest:
        _merge_leaf(target, head, value)
        return

    if rest == [""]:
        existing = target.get(head)
        if existing is None:
            target[head] = [value]
        elif isinstance(existing, list):
            existing.append(value)
        elif isinstance(existing, dict):
            logger.debug("Query key %r already holds a mapping; dropping list value", head)
        else:
            target[head] = [existing, value]
        return

    child = target.get(head)
    if child is None:
        child = target[head] = {}
    elif not isinstance(child, dict):
        logger.debug("Query key %r already holds a scalar; dropping nested value", head)
        return
    _assign(child, rest, value)


def parse_query_items(items: Iterable[Tuple[str, str]], depth: int = MAX_DEPTH) -> Dict[str, Any]:
    """Build the nested query mapping from decoded (key, value) pairs, in order."""
    result: Dict[str, Any] = {}
    for key, value in items:
        if not key:
            continue
        _assign(result, split_key(key, depth), value)
    return result


def parse_query_string(raw: str, depth: int = MAX_DEPTH) -> Dict[str, Any]:
    """Parse an undecoded `a=1&b[c]=2` string (query strings, urlencoded bodies)."""
    return parse_query_items(parse_qsl(raw, keep_blank_values=True), depth)
