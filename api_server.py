#!/usr/bin/env python3
"""
FastAPI Server for Temporal Bench Runs

This module exposes the bench report client over HTTP.

Features:
- Start bench runs from a JSON run spec
- Run state, histogram and server metrics reports (JSON and CSV)
- Mapping of Temporal and Prometheus failures to HTTP status codes
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel, Field
import uvicorn

from temporalio.client import WorkflowQueryFailedError
from temporalio.exceptions import WorkflowAlreadyStartedError
from temporalio.service import RPCError, RPCStatusCode

from config.retry_policies import InvalidSpecError, MetricsBackendError
from utils.report_client import BenchReportClient

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class StartBenchResponse(BaseModel):
    """Response of a started bench run."""
    workflow_id: str = Field(..., description="Bench workflow ID")
    timestamp: datetime = Field(default_factory=datetime.now, description="Response timestamp")


def to_http_error(workflow_id: str, error: Exception) -> HTTPException:
    """Translate a client failure into an HTTP error."""
    if isinstance(error, HTTPException):
        return error
    if isinstance(error, RPCError) and error.status == RPCStatusCode.NOT_FOUND:
        return HTTPException(status_code=404, detail=f"Bench run not found: {workflow_id}")
    if isinstance(error, WorkflowQueryFailedError):
        return HTTPException(status_code=409, detail=f"Bench run {workflow_id} is not reporting: {error}")
    if isinstance(error, MetricsBackendError):
        return HTTPException(status_code=502, detail=f"Metrics backend error: {error}")
    return HTTPException(status_code=500, detail=f"Failed to query bench run {workflow_id}: {error}")


def csv_response(content: str, workflow_id: str, name: str) -> Response:
    return PlainTextResponse(
        content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{workflow_id}-{name}.csv"'},
    )


# Initialize FastAPI app
app = FastAPI(
    title="Temporal Bench API",
    description="Start Temporal bench runs and fetch their reports",
    version="1.0.0"
)

# Initialize report client
report_client = BenchReportClient()


@app.on_event("startup")
async def startup_event():
    """Initialize connections on startup."""
    logger.info("Starting Temporal Bench API server")
    try:
        await report_client.get_temporal_client()
        logger.info("Temporal connection established successfully")
    except Exception as e:
        logger.error(f"Failed to establish Temporal connection: {e}")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    try:
        client = await report_client.get_temporal_client()
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "temporal_connected": client is not None
        }
    except Exception as e:
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "timestamp": datetime.now().isoformat(),
                "error": str(e)
            }
        )


@app.post("/benchmarks", response_model=StartBenchResponse)
async def start_benchmark(
    request: Dict[str, Any] = Body(..., description="Run spec"),
    workflow_id: Optional[str] = Query(None, description="Bench workflow ID"),
):
    """Validate a run spec and start a bench run."""
    try:
        started_id = await report_client.start_run(request, workflow_id=workflow_id)
        return StartBenchResponse(workflow_id=started_id)
    except InvalidSpecError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except WorkflowAlreadyStartedError as e:
        raise HTTPException(status_code=409, detail=f"Bench run already exists: {e}")
    except Exception as e:
        logger.error(f"Failed to start bench run: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to start bench run: {e}")


@app.get("/benchmarks/{workflow_id}/state")
async def get_state(workflow_id: str):
    """Current state of a bench run."""
    try:
        return await report_client.get_state(workflow_id)
    except Exception as e:
        logger.error(f"Failed to get state of {workflow_id}: {e}")
        raise to_http_error(workflow_id, e)


@app.get("/benchmarks/{workflow_id}/histogram")
async def get_histogram(workflow_id: str):
    """Histogram of a finished bench run as JSON."""
    try:
        content = await report_client.get_histogram(workflow_id)
    except Exception as e:
        logger.error(f"Failed to get histogram of {workflow_id}: {e}")
        raise to_http_error(workflow_id, e)
    return Response(content, media_type="application/json")


@app.get("/benchmarks/{workflow_id}/histogram.csv")
async def get_histogram_csv(workflow_id: str):
    """Histogram of a finished bench run as CSV."""
    try:
        content = await report_client.get_histogram_csv(workflow_id)
    except Exception as e:
        logger.error(f"Failed to get histogram CSV of {workflow_id}: {e}")
        raise to_http_error(workflow_id, e)
    return csv_response(content, workflow_id, "histogram")


@app.get("/benchmarks/{workflow_id}/metrics")
async def get_metrics(workflow_id: str):
    """Server metrics for the window of a finished bench run as JSON."""
    try:
        content = await report_client.get_metrics_json(workflow_id)
    except Exception as e:
        logger.error(f"Failed to get metrics of {workflow_id}: {e}")
        raise to_http_error(workflow_id, e)
    return Response(content, media_type="application/json")


@app.get("/benchmarks/{workflow_id}/metrics.csv")
async def get_metrics_csv(workflow_id: str):
    """Server metrics for the window of a finished bench run as CSV."""
    try:
        content = await report_client.get_metrics_csv(workflow_id)
    except Exception as e:
        logger.error(f"Failed to get metrics CSV of {workflow_id}: {e}")
        raise to_http_error(workflow_id, e)
    return csv_response(content, workflow_id, "metrics")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Temporal Bench API Server")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")

    args = parser.parse_args()

    logger.info(f"Starting server on {args.host}:{args.port}")
    logger.info(f"Temporal server: {report_client.config.temporal.host}")
    logger.info(f"Temporal namespace: {report_client.config.temporal.namespace}")

    uvicorn.run(
        "api_server:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info"
    )
