"""Main application with health, stats and control endpoints."""

import threading
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .config import settings
from .consumer import StepCounterConsumer
from .logging_setup import setup_logging
from .models import ActivityModeUpdate, DetectorStats

# Global consumer instance
consumer: Optional[StepCounterConsumer] = None
consumer_thread: Optional[threading.Thread] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    global consumer, consumer_thread

    setup_logging(settings.service_name, settings)

    # Startup
    consumer = StepCounterConsumer()
    consumer_thread = threading.Thread(target=consumer.start, daemon=True)
    consumer_thread.start()

    yield

    # Shutdown
    if consumer:
        consumer.cleanup()


app = FastAPI(
    title="Step Counter",
    description="Counts steps from accelerometer data",
    version="1.0.0",
    lifespan=lifespan,
)


def _require_consumer() -> StepCounterConsumer:
    if consumer is None:
        raise HTTPException(status_code=503, detail="Consumer not started")
    return consumer


@app.get("/healthz")
async def liveness():
    """Liveness probe endpoint."""
    return {"status": "alive"}


@app.get("/readyz")
async def readiness():
    """Readiness probe endpoint."""
    if consumer and consumer.running:
        return {"status": "ready"}
    return Response(
        content='{"status": "not ready"}',
        status_code=503,
        media_type="application/json",
    )


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/devices")
async def list_devices() -> List[Dict]:
    """Devices with a detector, and their step counts."""
    current = _require_consumer()
    return [
        {
            "device_id": device_id,
            "total_steps": tally.total_steps,
            "daily_steps": tally.daily_steps,
        }
        for device_id, tally in list(current.tallies.items())
    ]


@app.get("/devices/{device_id}/stats", response_model=DetectorStats)
async def device_stats(device_id: str):
    stats = _require_consumer().device_stats(device_id)
    if stats is None:
        raise HTTPException(status_code=404, detail=f"Unknown device: {device_id}")
    return stats


@app.put("/activity-mode")
async def set_activity_mode(update: ActivityModeUpdate):
    """Switch the activity profile for one device or all devices."""
    mode = _require_consumer().set_activity_mode(update.mode, update.device_id)
    if mode is None:
        raise HTTPException(status_code=404, detail=f"Unknown device: {update.device_id}")
    return {"mode": mode.value, "device_id": update.device_id}


@app.post("/devices/{device_id}/reset")
async def reset_device(device_id: str, full: bool = False):
    if not _require_consumer().reset_device(device_id, full=full):
        raise HTTPException(status_code=404, detail=f"Unknown device: {device_id}")
    return {"device_id": device_id, "full": full}


if __name__ == "__main__":
    uvicorn.run(
        "step_counter.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
