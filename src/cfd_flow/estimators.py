from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import cv2
import httpx
import numpy as np

from .config import ESTIMATOR_TIMEOUT_S, ESTIMATOR_URL
from .errors import EstimationFailure
from .frames import decode_frame
from .models import Frame, VectorLike

logger = logging.getLogger(__name__)


class FlowEstimator(Protocol):
    """Opaque optical-flow capability: two frames in, row-major vectors out."""

    async def estimate(
        self, frame_a: Frame, frame_b: Frame, grid_width: int, grid_height: int
    ) -> Sequence[VectorLike] | np.ndarray: ...


def encode_frame_payload(frame: Frame) -> str:
    return base64.b64encode(frame.data).decode("ascii")


class HttpFlowEstimator:
    """Client for a remote estimation service exposing ``POST /estimate``."""

    def __init__(
        self,
        base_url: str = ESTIMATOR_URL,
        timeout_s: float = ESTIMATOR_TIMEOUT_S,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._client = client

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        url = f"{self.base_url}/estimate"
        if self._client is not None:
            return await self._client.post(url, json=payload, timeout=self.timeout_s)
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            return await client.post(url, json=payload)

    async def estimate(
        self, frame_a: Frame, frame_b: Frame, grid_width: int, grid_height: int
    ) -> list[Any]:
        payload = {
            "frame_a": encode_frame_payload(frame_a),
            "frame_b": encode_frame_payload(frame_b),
            "mime_type": "image/jpeg",
            "grid_width": grid_width,
            "grid_height": grid_height,
        }
        try:
            response = await self._post(payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as error:
            raise EstimationFailure(f"flow estimation request failed: {error}") from error
        except ValueError as error:
            raise EstimationFailure("flow estimation service returned invalid JSON") from error

        vectors = body.get("vectors") if isinstance(body, dict) else None
        if not isinstance(vectors, list):
            raise EstimationFailure("flow estimation response has no 'vectors' list")
        logger.debug("estimator returned %d vectors", len(vectors))
        return vectors


@dataclass(frozen=True)
class FarnebackConfig:
    """Parameters for OpenCV's dense Farneback optical flow."""

    pyr_scale: float = 0.5
    levels: int = 3
    winsize: int = 15
    iterations: int = 3
    poly_n: int = 5
    poly_sigma: float = 1.2
    blur_kernel: int = 5


class FarnebackFlowEstimator:
    """Local estimator: dense optical flow area-averaged onto the grid."""

    def __init__(self, config: FarnebackConfig | None = None) -> None:
        self.config = config or FarnebackConfig()

    def _prepare(self, image: np.ndarray) -> np.ndarray:
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY) if image.ndim == 3 else image
        kernel = self.config.blur_kernel
        if kernel > 1:
            gray = cv2.GaussianBlur(gray, (kernel, kernel), 0)
        return gray

    def estimate_images(
        self, image_a: np.ndarray, image_b: np.ndarray, grid_width: int, grid_height: int
    ) -> np.ndarray:
        if image_a.shape[:2] != image_b.shape[:2]:
            raise ValueError("frames must have identical dimensions")
        cfg = self.config
        try:
            flow = cv2.calcOpticalFlowFarneback(
                self._prepare(image_a),
                self._prepare(image_b),
                None,
                cfg.pyr_scale,
                cfg.levels,
                cfg.winsize,
                cfg.iterations,
                cfg.poly_n,
                cfg.poly_sigma,
                0,
            )
            pooled = cv2.resize(flow, (grid_width, grid_height), interpolation=cv2.INTER_AREA)
        except cv2.error as error:
            raise EstimationFailure(f"optical flow computation failed: {error}") from error
        return np.asarray(pooled, dtype=np.float64).reshape(-1, 2)

    async def estimate(
        self, frame_a: Frame, frame_b: Frame, grid_width: int, grid_height: int
    ) -> np.ndarray:
        image_a = decode_frame(frame_a.data)
        image_b = decode_frame(frame_b.data)
        return await asyncio.to_thread(
            self.estimate_images, image_a, image_b, grid_width, grid_height
        )
