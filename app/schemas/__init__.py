from pydantic import BaseModel
from typing import Optional, Dict, Any

from app.schemas.chain import (
    ChainJobResponse,
    ChainListResponse,
    CostEstimateRequest,
    CostEstimateResponse,
    CreateChainRequest,
    CreateChainResponse,
)


class StatusResponse(BaseModel):
    status: str
    message: str
    details: Optional[Dict[str, Any]] = None


__all__ = [
    "StatusResponse",
    "ChainJobResponse",
    "ChainListResponse",
    "CostEstimateRequest",
    "CostEstimateResponse",
    "CreateChainRequest",
    "CreateChainResponse",
]
