"""
Natours Backend — Request Pipeline Package
============================================

What:  The framework-neutral front door every request passes through.
How:   Stages run strictly in order and short-circuit on the first fault:

    Request → [RateLimit] → [BodyParser] → [Sanitizer] → [Normalizer]
            → [TimeStamp] → [Router] → handler group
                 │              │            │            │          │
                 └──────────────┴─── fault ──┴────────────┴──────────┴─→ [ErrorClassifier]

The Starlette adapter in natours.main converts requests in and responses out.
"""

from natours.pipeline.body import BodyParser
from natours.pipeline.classifier import ErrorClassifier
from natours.pipeline.normalizer import ParameterNormalizer, normalize_parameters
from natours.pipeline.rate_limit import (
    InMemoryRateWindowStore,
    RateWindow,
    RateWindowStore,
    RequestLimiter,
)
from natours.pipeline.request import PipelineRequest
from natours.pipeline.response import PipelineResponse
from natours.pipeline.router import HandlerResult, Router, RouteTable
from natours.pipeline.runner import RequestPipeline, RequestTimeStamper, build_pipeline
from natours.pipeline.sanitizer import PayloadSanitizer, SanitizationRule

__all__ = [
    "BodyParser",
    "ErrorClassifier",
    "HandlerResult",
    "InMemoryRateWindowStore",
    "ParameterNormalizer",
    "PayloadSanitizer",
    "PipelineRequest",
    "PipelineResponse",
    "RateWindow",
    "RateWindowStore",
    "RequestLimiter",
    "RequestPipeline",
    "RequestTimeStamper",
    "RouteTable",
    "Router",
    "SanitizationRule",
    "build_pipeline",
    "normalize_parameters",
]
