"""
Natours Backend — Response Envelope Schemas
=============================================

What:  Pydantic models for every JSON body the front door emits.
How:   Success and error responses share one envelope; fields that were not
       set are omitted from the serialized output (exclude_unset), so a
       production error body is exactly {"status", "message"}.

Shapes:
    success:            {"status": "success", "results"?, "data"}
    production error:   {"status": "fail" | "error", "message"}
    development error:  {"status", "message", "error": FaultDetail, "stack"}
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class CauseDetail(BaseModel):
    """One link of a fault's cause chain."""

    type: str = Field(description="Exception class name")
    message: str = Field(description="Exception text")


class FaultDetail(BaseModel):
    """Full fault description, only emitted in development mode."""

    kind: str
    status_code: int
    is_operational: bool
    message: str
    context: Dict[str, Any] = Field(default_factory=dict)
    causes: List[CauseDetail] = Field(default_factory=list)


class ResponseEnvelope(BaseModel):
    status: Literal["success", "fail", "error"]
    results: Optional[int] = None
    data: Optional[Any] = None
    message: Optional[str] = None
    error: Optional[FaultDetail] = None
    stack: Optional[str] = None

    def to_content(self) -> Dict[str, Any]:
        """Serialize only the fields that were explicitly set."""
        return self.model_dump(mode="json", exclude_unset=True)
