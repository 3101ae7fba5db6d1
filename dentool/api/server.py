"""FastAPI server exposing the start/stop controls and the latest result."""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional
import logging

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import uvicorn

from ..errors import DetectionError
from ..io.sink import CompositeSink, LatestResultSink
from ..pipeline import DetectionPipeline
from ..scheduler import TickScheduler

logger = logging.getLogger(__name__)


class ControlResponse(BaseModel):
    """Response model for start/stop controls."""
    status: str
    message: str


class ResultResponse(BaseModel):
    """Response model for the latest detection result."""
    state: str
    status: str
    result: Optional[Dict[str, Any]] = None


class HealthResponse(BaseModel):
    """Response model for health check."""
    status: str
    timestamp: str
    pipeline_state: str
    components: Dict[str, bool]


def create_api_server(
    pipeline: DetectionPipeline,
    latest: Optional[LatestResultSink] = None,
    port: int = 8000
) -> FastAPI:
    """
    Create FastAPI server for a detection pipeline.

    Args:
        pipeline: Pipeline instance
        latest: Sink holding the latest result (attached to the pipeline if None)
        port: Server port

    Returns:
        FastAPI application
    """
    if latest is None:
        latest = LatestResultSink()
        pipeline.sink = CompositeSink([pipeline.sink, latest])

    async def stop_session(app: FastAPI) -> None:
        scheduler = app.state.scheduler
        task = app.state.scheduler_task
        if scheduler is not None:
            scheduler.cancel()
        await pipeline.stop()
        if task is not None:
            await task
        app.state.scheduler = None
        app.state.scheduler_task = None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await stop_session(app)

    app = FastAPI(
        title="Dental Tool Recognition API",
        description="API for real-time dental tool recognition",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    app.state.pipeline = pipeline
    app.state.latest = latest
    app.state.scheduler = None
    app.state.scheduler_task = None

    @app.get("/", response_class=JSONResponse)
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "Dental Tool Recognition API",
            "version": "1.0.0",
            "timestamp": datetime.now().isoformat(),
            "endpoints": {
                "health": "/health",
                "start": "/control/start",
                "stop": "/control/stop",
                "result": "/result",
                "statistics": "/stats",
                "documentation": "/docs"
            }
        }

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint."""
        components = {
            "classifier": pipeline.classifier is not None,
            "frame_source": pipeline.frame_source is not None,
        }

        return HealthResponse(
            status="healthy" if pipeline.is_running else pipeline.state.value,
            timestamp=datetime.now().isoformat(),
            pipeline_state=pipeline.state.value,
            components=components
        )

    @app.post("/control/start", response_model=ControlResponse)
    async def start_detection():
        """Start the recognition session; repeated calls are no-ops."""
        if not pipeline.fsm.can_start:
            return ControlResponse(status=pipeline.state.value, message="Session already active")

        try:
            started = await pipeline.start()
        except DetectionError as e:
            raise HTTPException(status_code=503, detail=str(e))

        if not started:
            return ControlResponse(status=pipeline.state.value, message="Session not started")

        scheduler = TickScheduler(pipeline.tick, interval_s=pipeline.config.pipeline.tick_interval_s)
        app.state.scheduler = scheduler
        app.state.scheduler_task = asyncio.create_task(scheduler.run())

        return ControlResponse(status=pipeline.state.value, message="Camera running")

    @app.post("/control/stop", response_model=ControlResponse)
    async def stop_detection():
        """Stop the recognition session and release the camera."""
        await stop_session(app)
        return ControlResponse(status=pipeline.state.value, message="Stopped")

    @app.get("/result", response_model=ResultResponse)
    async def get_result():
        """Latest detection result and status line."""
        snapshot = latest.snapshot()
        return ResultResponse(
            state=pipeline.state.value,
            status=snapshot['status'],
            result=snapshot['result']
        )

    @app.get("/stats")
    async def get_statistics():
        """Get pipeline statistics."""
        return JSONResponse(content=pipeline.get_statistics())

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    logger.info(f"API server created on port {port}")

    return app


def run_server(pipeline: DetectionPipeline, host: str = "0.0.0.0", port: int = 8000) -> None:
    """
    Run the API server.

    Args:
        pipeline: Pipeline instance
        host: Server host
        port: Server port
    """
    app = create_api_server(pipeline, port=port)

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info"
    )
