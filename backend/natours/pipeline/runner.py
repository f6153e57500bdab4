"""
Natours Backend — Request Pipeline Runner
===========================================

What:  Runs the ordered stage list, then the router, for one request.
How:   Each stage is an async callable `stage(request) -> request`. A stage
       either returns the (possibly replaced) request or raises. The first
       exception stops the pipeline and goes to the ErrorClassifier; nothing
       after the failing stage runs.

Default order (build_pipeline):
    ┌──────────────┐ ┌────────────┐ ┌────────────┐ ┌────────────┐ ┌────────────┐ ┌────────┐
    │ RateLimit    │→│ BodyParser │→│ Sanitizer  │→│ Normalizer │→│ TimeStamp  │→│ Router │
    │ (/api only)  │ │ (413 limit)│ │ ($ / XSS)  │ │ (HPP)      │ │            │ │ (+404) │
    └──────────────┘ └────────────┘ └────────────┘ └────────────┘ └────────────┘ └────────┘

asyncio.CancelledError is not an Exception subclass and is never
intercepted; an aborted connection cancels the task wherever it is.
"""

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, List, Optional

from natours.config import Settings
from natours.pipeline.body import BodyParser
from natours.pipeline.classifier import ErrorClassifier
from natours.pipeline.normalizer import ParameterNormalizer
from natours.pipeline.rate_limit import Clock, RateWindowStore, RequestLimiter
from natours.pipeline.request import PipelineRequest
from natours.pipeline.response import PipelineResponse
from natours.pipeline.router import HandlerResult, Router, RouteTable
from natours.pipeline.sanitizer import PayloadSanitizer
from natours.schemas.envelope import ResponseEnvelope

logger = logging.getLogger(__name__)

Stage = Callable[[PipelineRequest], Awaitable[PipelineRequest]]


class RequestTimeStamper:
    """Pipeline stage recording when the request entered the handler layer."""

    name = "request_time"

    def __init__(self, now: Optional[Callable[[], datetime]] = None):
        self.now = now or (lambda: datetime.now(timezone.utc))

    async def __call__(self, request: PipelineRequest) -> PipelineRequest:
        request.request_time = self.now().isoformat()
        return request


class RequestPipeline:
    """Ordered stages + router + classifier."""

    def __init__(
        self,
        stages: Iterable[Stage],
        router: Router,
        classifier: ErrorClassifier,
    ):
        self.stages: List[Stage] = list(stages)
        self.router = router
        self.classifier = classifier

    @property
    def stage_names(self) -> List[str]:
        return [getattr(stage, "name", type(stage).__name__) for stage in self.stages]

    def _success(self, request: PipelineRequest, result: HandlerResult) -> PipelineResponse:
        headers = dict(request.response_headers)
        headers.update(result.headers)
        if result.status_code == 204:
            return PipelineResponse(204, None, headers)

        fields = {"status": "success", "data": result.data}
        if result.results is not None:
            fields["results"] = result.results
        envelope = ResponseEnvelope(**fields)
        return PipelineResponse(result.status_code, envelope.to_content(), headers)

    async def handle(self, request: PipelineRequest) -> PipelineResponse:
        """Run every stage, dispatch, and shape the response."""
        try:
            for stage in self.stages:
                request = await stage(request)
            request.freeze()
            result = await self.router.dispatch(request)
            return self._success(request, result)
        except Exception as exc:
            return self.classifier.respond(exc, request)


def build_pipeline(
    config: Settings,
    route_table: Optional[RouteTable] = None,
    store: Optional[RateWindowStore] = None,
    clock: Optional[Clock] = None,
) -> RequestPipeline:
    """Assemble the default stage order from configuration."""
    stages: List[Stage] = [
        RequestLimiter(
            max_requests=config.max_requests_per_window,
            window_duration=config.window_duration_ms,
            prefix=config.api_prefix,
            store=store,
            clock=clock,
        ),
        BodyParser(limit_bytes=config.body_size_limit_bytes),
        PayloadSanitizer(),
        ParameterNormalizer(allow_list=config.allowed_parameters),
        RequestTimeStamper(),
    ]
    pipeline = RequestPipeline(
        stages=stages,
        router=Router(route_table),
        classifier=ErrorClassifier(mode=config.mode),
    )
    logger.info("Request pipeline: %s → router", " → ".join(pipeline.stage_names))
    return pipeline
