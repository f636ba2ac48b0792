import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from app.config.constants import DEFAULT_QUERY_LIMIT, ERROR_CHAIN_NOT_FOUND, MAX_QUERY_LIMIT
from app.models.chain_job import ChainJob
from app.schemas import (
    ChainJobResponse,
    ChainListResponse,
    CostEstimateRequest,
    CostEstimateResponse,
    CreateChainRequest,
    CreateChainResponse,
)
from app.services.chain.errors import ChainNotFoundError, InvalidStateTransitionError
from app.services.chain_service import ChainService

router = APIRouter()
logger = logging.getLogger(__name__)


def get_chain_service(request: Request) -> ChainService:
    return request.app.state.chain_service


def _to_response(job: dict, queue_position=None) -> ChainJobResponse:
    data = dict(job)
    data["plan"] = data.pop("plan_json", None)
    data["message"] = ChainJob(**job).get_status_message()
    if queue_position is not None:
        data["queue_position"] = queue_position
    return ChainJobResponse(**data)


@router.post("", response_model=CreateChainResponse, status_code=201)
async def create_chain(request: CreateChainRequest, service: ChainService = Depends(get_chain_service)):
    try:
        job = await service.create_chain(
            base_prompt=request.base_prompt,
            total_duration=request.total_duration,
            seconds_per_segment=request.seconds_per_segment,
            model=request.model,
            size=request.size,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return CreateChainResponse(
        success=True,
        message="Chain queued",
        job_id=job.job_id,
        num_segments=job.num_segments,
        adjusted_total_duration=job.adjusted_total_duration,
        queue_position=service.orchestrator.get_queue_position(job.job_id),
        status_check_url=f"/api/chains/{job.job_id}",
    )


@router.post("/estimate", response_model=CostEstimateResponse)
async def estimate_chain_cost(request: CostEstimateRequest):
    try:
        return ChainService.estimate_cost(
            request.total_duration, request.seconds_per_segment, request.model, request.size
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("", response_model=ChainListResponse)
async def list_chains(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_QUERY_LIMIT, ge=1, le=MAX_QUERY_LIMIT),
    service: ChainService = Depends(get_chain_service),
):
    jobs = await service.list_chains(page=page, limit=limit)
    return ChainListResponse(
        chains=[_to_response(job, service.orchestrator.get_queue_position(job["job_id"])) for job in jobs],
        page=page,
        limit=limit,
        queue_length=service.orchestrator.get_queue_length(),
    )


@router.get("/{job_id}", response_model=ChainJobResponse)
async def get_chain(job_id: str, service: ChainService = Depends(get_chain_service)):
    try:
        job = await service.get_chain(job_id)
    except ChainNotFoundError:
        raise HTTPException(status_code=404, detail=ERROR_CHAIN_NOT_FOUND)
    return _to_response(job)


@router.post("/{job_id}/retry", response_model=ChainJobResponse)
async def retry_chain(job_id: str, service: ChainService = Depends(get_chain_service)):
    try:
        job = await service.orchestrator.retry_chain(job_id)
    except ChainNotFoundError:
        raise HTTPException(status_code=404, detail=ERROR_CHAIN_NOT_FOUND)
    except InvalidStateTransitionError as e:
        raise HTTPException(status_code=409, detail=f"Only failed chains can be retried, this one is {e.current_state}")
    return _to_response(job, service.orchestrator.get_queue_position(job_id))


@router.delete("/{job_id}")
async def delete_chain(job_id: str, service: ChainService = Depends(get_chain_service)):
    try:
        await service.orchestrator.delete_chain(job_id)
    except ChainNotFoundError:
        raise HTTPException(status_code=404, detail=ERROR_CHAIN_NOT_FOUND)
    return {"success": True, "job_id": job_id}
