from __future__ import annotations

import base64
import binascii
import time

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .aggregator import grid_from_estimate
from .errors import EstimationFailure, MalformedEstimateError
from .estimators import FarnebackFlowEstimator, FlowEstimator
from .frames import decode_frame
from .models import Frame

MAX_SERVICE_GRID = 256


class EstimateRequest(BaseModel):
    frame_a: str = Field(min_length=1, description="Base64-encoded first image.")
    frame_b: str = Field(min_length=1, description="Base64-encoded second image.")
    grid_width: int = Field(ge=1, le=MAX_SERVICE_GRID)
    grid_height: int = Field(ge=1, le=MAX_SERVICE_GRID)
    mime_type: str = "image/jpeg"


class VectorModel(BaseModel):
    u: float
    v: float


class EstimateResponse(BaseModel):
    grid_width: int
    grid_height: int
    vectors: list[VectorModel]
    elapsed_ms: float


def _decode_image_field(name: str, value: str) -> Frame:
    try:
        data = base64.b64decode(value, validate=True)
        image = decode_frame(data)
    except (binascii.Error, ValueError) as error:
        raise HTTPException(status_code=422, detail=f"{name} is not a decodable image") from error
    height, width = image.shape[:2]
    return Frame(timestamp_s=0.0, width=int(width), height=int(height), data=data)


def create_estimation_app(estimator: FlowEstimator | None = None) -> FastAPI:
    app = FastAPI(
        title="CFD Flow Estimation API",
        version="0.1.0",
        description="Optical-flow estimation on a fixed grid for pairs of video frames.",
    )
    app.state.estimator = estimator or FarnebackFlowEstimator()

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "estimator": type(app.state.estimator).__name__}

    @app.post("/estimate", response_model=EstimateResponse)
    async def estimate(request: EstimateRequest) -> EstimateResponse:
        frame_a = _decode_image_field("frame_a", request.frame_a)
        frame_b = _decode_image_field("frame_b", request.frame_b)
        if (frame_a.width, frame_a.height) != (frame_b.width, frame_b.height):
            raise HTTPException(status_code=422, detail="frames must have identical dimensions")

        started = time.perf_counter()
        try:
            vectors = await app.state.estimator.estimate(
                frame_a, frame_b, request.grid_width, request.grid_height
            )
            grid = grid_from_estimate(vectors, request.grid_width, request.grid_height)
        except (EstimationFailure, MalformedEstimateError) as error:
            raise HTTPException(status_code=502, detail=str(error)) from error
        elapsed_ms = (time.perf_counter() - started) * 1000.0

        return EstimateResponse(
            grid_width=grid.width,
            grid_height=grid.height,
            vectors=[VectorModel(u=float(u), v=float(v)) for u, v in grid.data.reshape(-1, 2)],
            elapsed_ms=elapsed_ms,
        )

    return app
