"""
Natours Backend — Health Check Handler Group
==============================================

What:  GET /health for load balancer and container probes.
How:   Registered in the route table like any other handler group, outside
       the API prefix, so probes are never rate limited.

Response:
    {"status": "success",
     "data": {"status": "healthy", "version": "1.0.0",
              "mode": "production", "uptime_seconds": 12.3}}
"""

import time
from typing import Callable, Optional

from natours import __version__
from natours.exceptions import MethodNotAllowedError, RouteNotFoundError
from natours.pipeline.request import PipelineRequest
from natours.pipeline.router import HandlerResult


class HealthGroup:
    """Handler group answering liveness probes."""

    def __init__(self, mode: str, clock: Optional[Callable[[], float]] = None):
        self.mode = mode
        self.clock = clock or time.monotonic
        self.started_at = self.clock()

    def __call__(self, request: PipelineRequest, remainder: str) -> HandlerResult:
        if remainder != "/":
            raise RouteNotFoundError(request.original_url)
        if request.method not in ("GET", "HEAD"):
            raise MethodNotAllowedError(request.method, request.path)

        return HandlerResult(
            data={
                "status": "healthy",
                "version": __version__,
                "mode": self.mode,
                "uptime_seconds": round(self.clock() - self.started_at, 2),
            }
        )
