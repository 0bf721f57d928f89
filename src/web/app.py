"""
FastAPI application factory for the detection service.

Routes:
- /api/health -> detector state and backend
- /api/metrics -> rolling runtime metrics
- /api/detection/start, /api/detection/stop -> real-time detection toggle
- /api/detect -> still-image detection (raw image body)
- /api/detections -> latest published detections
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routes import api


def create_app() -> FastAPI:
    """Create the FastAPI app and wire routes."""
    app = FastAPI(
        title="Object Detector",
        version="0.1.0",
        description="Real-time object detection service",
    )

    # CORS for development (UI dev server)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api.router, prefix="/api")

    return app
