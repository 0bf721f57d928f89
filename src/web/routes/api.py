from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from starlette.concurrency import run_in_threadpool

from imaging.io import decode_image
from models.errors import (
    ControllerDisposedError,
    DetectionError,
    ImageError,
    ModelError,
)
from ..api_models import (
    DetectionModel,
    DetectionStatusResponse,
    DetectResponse,
    HealthResponse,
    LatestDetectionsResponse,
    MetricsResponse,
)
from ..state import state

router = APIRouter()


def _controller():
    controller = state.get_controller()
    if controller is None:
        raise HTTPException(status_code=503, detail="Detector not configured")
    return controller


def _http_error(e: DetectionError) -> HTTPException:
    """Map pipeline errors to HTTP status codes."""
    if isinstance(e, ImageError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ControllerDisposedError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ModelError):
        return HTTPException(status_code=503, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


@router.get("/health", response_model=HealthResponse)
def health():
    now = time.time()
    sys_stats = state.get_system_stats_copy()
    start_time = sys_stats.get("start_time") or now
    last_ts = sys_stats.get("last_detection_ts")

    controller = state.get_controller()
    detector_state = controller.state.value if controller is not None else None
    runtime = controller.runtime if controller is not None else None
    backend = runtime.backend.name if runtime is not None and runtime.backend is not None else None

    return {
        "status": "ok" if detector_state not in (None, "disposed") else "degraded",
        "state": detector_state,
        "backend": backend,
        "uptime_seconds": int(now - start_time),
        "last_detection_age_s": now - last_ts if last_ts else None,
    }


@router.get("/metrics", response_model=MetricsResponse)
def metrics():
    return MetricsResponse.from_metrics(_controller().metrics)


@router.post("/detection/start", response_model=DetectionStatusResponse)
def start_detection():
    controller = _controller()
    try:
        controller.start_detection()
    except DetectionError as e:
        logging.error(f"Failed to start detection: {e}")
        raise _http_error(e)
    return {"state": controller.state.value, "active": controller.is_active}


@router.post("/detection/stop", response_model=DetectionStatusResponse)
def stop_detection():
    controller = _controller()
    try:
        controller.stop_detection()
    except DetectionError as e:
        raise _http_error(e)
    return {"state": controller.state.value, "active": controller.is_active}


@router.get("/detections", response_model=LatestDetectionsResponse)
def latest_detections():
    detections = state.get_detections()
    return {
        "count": len(detections),
        "detections": [DetectionModel.from_detection(d) for d in detections],
    }


def _detect_upload(controller, body: bytes, confidence, iou):
    rgb = decode_image(body, source="upload")
    return rgb, controller.detect_image(rgb, confidence, iou)


@router.post("/detect", response_model=DetectResponse)
async def detect(
    request: Request,
    confidence: Optional[float] = Query(None, ge=0.0, le=1.0),
    iou: Optional[float] = Query(None, ge=0.0, le=1.0),
):
    """
    Detect objects in an uploaded image.

    The request body is the raw encoded image (JPEG, PNG, ...).
    """
    controller = _controller()
    body = await request.body()
    try:
        rgb, detections = await run_in_threadpool(_detect_upload, controller, body, confidence, iou)
    except DetectionError as e:
        logging.warning(f"Image detection failed: {e}")
        raise _http_error(e)

    state.set_detections(detections)
    return {
        "count": len(detections),
        "width": int(rgb.shape[1]),
        "height": int(rgb.shape[0]),
        "detections": [DetectionModel.from_detection(d) for d in detections],
    }
