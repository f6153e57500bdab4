from natours.schemas.envelope import CauseDetail, FaultDetail, ResponseEnvelope

__all__ = ["CauseDetail", "FaultDetail", "ResponseEnvelope"]
