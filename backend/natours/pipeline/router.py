"""
Natours Backend — Prefix Router
=================================

What:  Dispatches a finished request to the handler group owning its path.
How:   Longest registered prefix wins; among prefixes of equal length the
       first registered wins. Matching is segment-aware, so
       `/api/v1/tours` owns `/api/v1/tours/5` but not `/api/v1/toursx`.
       The group receives the request and the path remainder (always
       starting with "/").

Catch-all:
    Unmatched paths, for every verb, raise RouteNotFoundError echoing the
    original URL. The catch-all is part of the router and cannot be
    unregistered.

Handler groups:
    Any callable `group(request, remainder)`, sync or async, returning a
    HandlerResult or plain data. Failures are raised, never written as
    responses.
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from natours.exceptions import RouteNotFoundError
from natours.pipeline.request import PipelineRequest, path_has_prefix

logger = logging.getLogger(__name__)

HandlerGroup = Callable[[PipelineRequest, str], Any]


@dataclass
class HandlerResult:
    """What a handler group returns when it needs more than plain data."""

    data: Any = None
    status_code: int = 200
    results: Optional[int] = None
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Route:
    prefix: str
    group: HandlerGroup
    order: int


def normalize_prefix(prefix: str) -> str:
    stripped = prefix.strip().strip("/")
    return "/" + stripped if stripped else "/"


class RouteTable:
    """Ordered prefix → handler group registrations."""

    def __init__(self) -> None:
        self._routes: List[Route] = []

    def register(self, prefix: str, group: HandlerGroup) -> None:
        route = Route(prefix=normalize_prefix(prefix), group=group, order=len(self._routes))
        self._routes.append(route)
        logger.debug("Registered handler group %r at %s", group, route.prefix)

    def __len__(self) -> int:
        return len(self._routes)

    @property
    def prefixes(self) -> List[str]:
        return [route.prefix for route in self._routes]

    def match(self, path: str) -> Optional[Tuple[Route, str]]:
        """Return (route, remainder) for the best prefix, or None."""
        best: Optional[Route] = None
        for route in self._routes:
            if not path_has_prefix(path, route.prefix):
                continue
            if best is None or len(route.prefix) > len(best.prefix):
                best = route
        if best is None:
            return None

        if best.prefix == "/":
            remainder = path or "/"
        else:
            remainder = path[len(best.prefix):] or "/"
        return best, remainder


class Router:
    """Final pipeline step: resolve the route and invoke its handler group."""

    def __init__(self, table: Optional[RouteTable] = None):
        self.table = table if table is not None else RouteTable()

    def register(self, prefix: str, group: HandlerGroup) -> None:
        self.table.register(prefix, group)

    def catch_all(self, request: PipelineRequest) -> HandlerResult:
        raise RouteNotFoundError(request.original_url)

    async def dispatch(self, request: PipelineRequest) -> HandlerResult:
        matched = self.table.match(request.path)
        if matched is None:
            return self.catch_all(request)

        route, remainder = matched
        outcome = route.group(request, remainder)
        if inspect.isawaitable(outcome):
            outcome = await outcome

        if isinstance(outcome, HandlerResult):
            return outcome
        return HandlerResult(data=outcome)
