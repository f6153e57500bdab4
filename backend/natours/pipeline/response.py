"""Framework-neutral response produced by the pipeline runner and the classifier."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class PipelineResponse:
    status_code: int
    content: Optional[Dict[str, Any]]
    headers: Dict[str, str] = field(default_factory=dict)
