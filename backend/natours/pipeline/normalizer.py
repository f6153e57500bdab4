"""
Natours Backend — Parameter Normalizer Stage
==============================================

What:  Prevents HTTP parameter pollution.
How:   Any top-level key holding several values collapses to the LAST value,
       unless the key is on the allow-list (range/filter fields such as
       `duration` or `price`, which legitimately repeat).

       ?sort=price&sort=duration   → sort = "duration"
       ?price=100&price=500        → price = ["100", "500"]  (allow-listed)

The same rule applies to urlencoded form bodies. JSON bodies and headers
are left alone. Collapsed values are kept on `request.polluted_query`.
"""

import logging
from typing import Any, Dict, FrozenSet, Iterable, Tuple

from natours.pipeline.request import PipelineRequest

logger = logging.getLogger(__name__)


def normalize_parameters(
    params: Dict[str, Any], allow_list: Iterable[str]
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Collapse repeated values outside the allow-list.

    Returns:
        (normalized mapping, {key: original list} for every collapsed key)
    """
    allowed = frozenset(allow_list)
    normalized: Dict[str, Any] = {}
    polluted: Dict[str, Any] = {}
    for key, value in params.items():
        if isinstance(value, list) and key not in allowed and value:
            normalized[key] = value[-1]
            polluted[key] = list(value)
        else:
            normalized[key] = value
    return normalized, polluted


class ParameterNormalizer:
    """Pipeline stage wrapping normalize_parameters()."""

    name = "normalizer"

    def __init__(self, allow_list: Iterable[str] = ()):
        self.allow_list: FrozenSet[str] = frozenset(allow_list)

    async def __call__(self, request: PipelineRequest) -> PipelineRequest:
        request.query, polluted = normalize_parameters(request.query, self.allow_list)
        if request.is_form_body and isinstance(request.body, dict):
            request.body, body_polluted = normalize_parameters(request.body, self.allow_list)
            for key, values in body_polluted.items():
                polluted.setdefault(key, values)

        if polluted:
            logger.debug("Collapsed repeated parameters: %s", sorted(polluted))
            request.polluted_query = polluted
        return request
