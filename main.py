from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import os
import logging
from contextlib import asynccontextmanager

# App routes and configuration
from app.config.database import close_connection, create_indexes, verify_connection
from app.config.settings import settings
from app.utils.logging_config import setup_logging
from app.utils.ffmpeg_helper import verify_ffmpeg
from app.utils.scheduling import PeriodicTask
from app.routes.chain_video import router as chain_video_router
from app.schemas import StatusResponse
from app.services.chain_service import ChainService, build_chain_orchestrator

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Performing startup health checks...")

    try:
        await verify_connection()
        logger.info("MongoDB health check completed")
    except Exception as e:
        logger.error(f"MongoDB health check failed: {e}")
        raise  # Critical failure - stop startup

    try:
        await create_indexes()
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")

    ffmpeg_ok, ffmpeg_message = verify_ffmpeg()
    if ffmpeg_ok:
        logger.info(ffmpeg_message)
    else:
        logger.warning(f"{ffmpeg_message} - chains will fail at frame extraction")

    os.makedirs(settings.chain_temp_root, exist_ok=True)

    orchestrator = build_chain_orchestrator()
    app.state.chain_service = ChainService(orchestrator)

    await orchestrator.recover_pending()
    orchestrator.start()

    workdir_sweeper = PeriodicTask(
        "Chain workdir sweep",
        settings.CHAIN_CLEANUP_INTERVAL_SECONDS,
        lambda: orchestrator.workdirs.sweep(orchestrator.repository),
    )
    workdir_sweeper.start()

    logger.info("API server startup completed successfully")
    yield

    logger.info("API server shutting down...")
    await workdir_sweeper.stop()
    # In-flight chains are not awaited, recover_pending() picks them up next start
    await orchestrator.stop(wait=False)
    close_connection()
    logger.info("API server shutdown complete")


app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description=settings.API_DESCRIPTION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.DEBUG or settings.NODE_ENV == "development" else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chain_video_router, prefix="/api/chains", tags=["chain-video"])


@app.get("/", response_model=StatusResponse)
async def root():
    return StatusResponse(
        status="active",
        message=f"Chain Video API is running - {settings.API_VERSION}"
    )


@app.get("/health/live")
async def health_live():
    # Process is up and FastAPI is serving
    return {"status": "ok"}


@app.get("/health/ready")
async def health_ready():
    result = {"status": "ok", "service": "Chain Video API"}

    try:
        await verify_connection()
        result["mongodb"] = "ok"
    except Exception as e:
        error_msg = str(e)[:100]
        result["mongodb"] = f"fail: {error_msg}"
        result["status"] = "degraded"
        logger.error(f"MongoDB health check failed: {error_msg}")
        return JSONResponse(status_code=503, content=result)

    ffmpeg_ok, _ = verify_ffmpeg()
    result["ffmpeg"] = "ok" if ffmpeg_ok else "missing"
    service = getattr(app.state, "chain_service", None)
    if service is not None:
        result["chains_running"] = service.orchestrator.active_count
        result["chains_queued"] = service.orchestrator.get_queue_length()
    return result


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
