import json
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.config.constants import (
    DEFAULT_MODEL,
    DEFAULT_SIZE,
    MAX_BASE_PROMPT_LENGTH,
    MIN_BASE_PROMPT_LENGTH,
)
from app.models.chain_job import derive_num_segments, parse_size, validate_model


class ChainRequestBase(BaseModel):
    total_duration: int = Field(..., gt=0, description="Total length of the chained video in seconds")
    seconds_per_segment: Literal[4, 8, 12] = Field(8, description="Length of every generated segment")
    model: str = DEFAULT_MODEL
    size: str = Field(DEFAULT_SIZE, description="WIDTHxHEIGHT, e.g. 1280x720")

    @field_validator("model")
    @classmethod
    def check_model(cls, v):
        return validate_model(v)

    @field_validator("size")
    @classmethod
    def validate_size(cls, v):
        parse_size(v)
        return v

    @model_validator(mode="after")
    def validate_segments(self):
        derive_num_segments(self.total_duration, self.seconds_per_segment)
        return self

    @property
    def num_segments(self) -> int:
        return derive_num_segments(self.total_duration, self.seconds_per_segment)

    @property
    def adjusted_total_duration(self) -> int:
        return self.num_segments * self.seconds_per_segment


class CreateChainRequest(ChainRequestBase):
    base_prompt: str = Field(..., min_length=MIN_BASE_PROMPT_LENGTH, max_length=MAX_BASE_PROMPT_LENGTH)

    @field_validator("base_prompt")
    @classmethod
    def validate_base_prompt(cls, v):
        if len(v.strip()) < MIN_BASE_PROMPT_LENGTH:
            raise ValueError(f"base_prompt must be at least {MIN_BASE_PROMPT_LENGTH} characters")
        return v


class CostEstimateRequest(ChainRequestBase):
    pass


class CreateChainResponse(BaseModel):
    success: bool
    message: str
    job_id: str
    num_segments: int
    adjusted_total_duration: int
    queue_position: Optional[int] = None
    status_check_url: str


class ChainJobResponse(BaseModel):
    job_id: str
    status: str
    progress: int
    message: str
    base_prompt: str
    total_duration: int
    seconds_per_segment: int
    num_segments: int
    model: str
    size: str
    queue_position: Optional[int] = None
    segment_job_ids: List[str] = Field(default_factory=list)
    plan: Optional[List[Dict[str, Any]]] = None
    final_video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    cost_details: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("plan", "cost_details", mode="before")
    @classmethod
    def decode_json(cls, v):
        if isinstance(v, str):
            return json.loads(v)
        return v


class ChainListResponse(BaseModel):
    chains: List[ChainJobResponse]
    page: int
    limit: int
    queue_length: int


class CostEstimateResponse(BaseModel):
    segments: int
    cost_per_segment: float
    price_per_second: float
    total_cost: float
    formatted_total: str
    model: str
    resolution: str
    billed_on: str
