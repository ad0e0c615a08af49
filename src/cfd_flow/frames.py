from __future__ import annotations

import asyncio
import logging
import math
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

import cv2
import numpy as np

from .config import SEEK_TIMEOUT_S
from .errors import StalledSeekError
from .geometry import source_crop_box
from .models import Frame, FrameSequence, RegionOfInterest, coerce_roi

logger = logging.getLogger(__name__)

SAMPLING_INTERVAL_S = 1.0 / 30.0
JPEG_QUALITY = 80

StatusCallback = Callable[[str], None]


class FrameSource(Protocol):
    """Seekable source of still frames (BGR ``uint8`` arrays)."""

    @property
    def width(self) -> int: ...

    @property
    def height(self) -> int: ...

    @property
    def duration_s(self) -> float: ...

    async def seek(self, timestamp_s: float) -> None:
        """Move to ``timestamp_s`` and return once that frame is ready."""

    def capture(self) -> np.ndarray:
        """Return the frame at the current position."""


class VideoFileFrameSource:
    """OpenCV-backed frame source over a video file.

    Decoding runs on a daemon thread per seek. A seek abandoned by its
    caller (for example after a timeout) keeps decoding in the background
    without holding up event-loop or interpreter shutdown; the capture is
    released by whichever of ``close()`` or the reader finishes last.
    """

    def __init__(self, video_path: str | Path) -> None:
        path = Path(video_path)
        if not path.exists():
            raise FileNotFoundError(path)

        capture = cv2.VideoCapture(str(path))
        if not capture.isOpened():
            raise RuntimeError(f"failed to open video: {path}")

        fps = capture.get(cv2.CAP_PROP_FPS)
        if fps <= 0:
            fps = 30.0
        frame_count = capture.get(cv2.CAP_PROP_FRAME_COUNT)

        self.path = path
        self.fps = fps
        self._capture = capture
        self._width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        self._height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self._duration_s = frame_count / fps if frame_count > 0 else math.inf
        self._current: np.ndarray | None = None
        self._lock = threading.Lock()
        self._reading = False
        self._closed = False
        self._reader: threading.Thread | None = None

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def duration_s(self) -> float:
        return self._duration_s

    async def seek(self, timestamp_s: float) -> None:
        with self._lock:
            if self._closed:
                raise RuntimeError(f"video source is closed: {self.path}")
            if self._reading:
                # An abandoned read still owns the capture.
                raise StalledSeekError(timestamp_s)
            self._reading = True

        loop = asyncio.get_running_loop()
        future: asyncio.Future[np.ndarray] = loop.create_future()
        self._reader = threading.Thread(
            target=self._read_in_background,
            args=(timestamp_s, loop, future),
            daemon=True,
        )
        self._reader.start()
        self._current = await future

    def _read_in_background(
        self,
        timestamp_s: float,
        loop: asyncio.AbstractEventLoop,
        future: asyncio.Future[np.ndarray],
    ) -> None:
        frame: np.ndarray | None = None
        failure: Exception | None = None
        try:
            frame = self._read_at(timestamp_s)
        except Exception as error:
            failure = error

        with self._lock:
            self._reading = False
            release = self._closed
        if release:
            self._capture.release()

        try:
            loop.call_soon_threadsafe(_settle, future, frame, failure)
        except RuntimeError:
            logger.debug("event loop closed before seek to t=%.3fs finished", timestamp_s)

    def _read_at(self, timestamp_s: float) -> np.ndarray:
        self._capture.set(cv2.CAP_PROP_POS_MSEC, timestamp_s * 1000.0)
        ok, frame = self._capture.read()
        if not ok or frame is None:
            raise StalledSeekError(timestamp_s)
        return frame

    def capture(self) -> np.ndarray:
        if self._current is None:
            raise RuntimeError("no frame decoded yet; seek before capturing")
        return self._current.copy()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            release = not self._reading
        if release:
            self._capture.release()

    def __enter__(self) -> VideoFileFrameSource:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _settle(
    future: asyncio.Future[np.ndarray], frame: np.ndarray | None, failure: Exception | None
) -> None:
    if future.done():
        return
    if failure is not None:
        future.set_exception(failure)
    else:
        future.set_result(frame)


def crop_to_roi(image: np.ndarray, roi: RegionOfInterest | None) -> np.ndarray:
    height, width = image.shape[:2]
    x, y, crop_width, crop_height = source_crop_box(roi, width, height)
    return image[y : y + crop_height, x : x + crop_width]


def encode_frame(image: np.ndarray, quality: int = JPEG_QUALITY) -> bytes:
    ok, buffer = cv2.imencode(".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise RuntimeError("failed to JPEG-encode frame")
    return buffer.tobytes()


def decode_frame(data: bytes) -> np.ndarray:
    image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
    if image is None:
        raise ValueError("could not decode image data")
    return image


def _to_frame(image: np.ndarray, timestamp_s: float, quality: int) -> Frame:
    height, width = image.shape[:2]
    return Frame(
        timestamp_s=timestamp_s,
        width=int(width),
        height=int(height),
        data=encode_frame(image, quality),
    )


async def _seek(source: FrameSource, timestamp_s: float, timeout_s: float | None) -> None:
    try:
        await asyncio.wait_for(source.seek(timestamp_s), timeout=timeout_s)
    except TimeoutError as error:
        raise StalledSeekError(timestamp_s, timeout_s) from error


async def capture_preview(
    source: FrameSource,
    timestamp_s: float,
    *,
    seek_timeout_s: float | None = SEEK_TIMEOUT_S,
    jpeg_quality: int = JPEG_QUALITY,
) -> Frame:
    """Capture one uncropped frame, used as the rendering background."""

    await _seek(source, timestamp_s, seek_timeout_s)
    return _to_frame(source.capture(), timestamp_s, jpeg_quality)


async def extract_frames(
    source: FrameSource,
    start_time_s: float,
    end_time_s: float,
    roi: RegionOfInterest | None = None,
    *,
    interval_s: float = SAMPLING_INTERVAL_S,
    seek_timeout_s: float | None = SEEK_TIMEOUT_S,
    jpeg_quality: int = JPEG_QUALITY,
    on_status: StatusCallback | None = None,
) -> FrameSequence:
    """Sample ``[start_time_s, end_time_s)`` at a fixed cadence.

    Each frame is optionally cropped to ``roi`` in source pixel space and
    JPEG-encoded. Ranges shorter than one interval yield zero or one frame;
    callers needing frame pairs must check the length. The source's playback
    position is left at the last sampled timestamp.
    """

    if interval_s <= 0:
        raise ValueError("interval_s must be positive")
    if start_time_s < 0:
        raise ValueError("start_time_s must be non-negative")

    crop_roi = coerce_roi(roi)
    end_s = min(end_time_s, source.duration_s)
    frames: list[Frame] = []

    if on_status is not None:
        on_status("Extracting frames from video...")

    index = 0
    while True:
        # Multiply rather than accumulate so timestamps do not drift.
        timestamp_s = start_time_s + index * interval_s
        if timestamp_s >= end_s:
            break

        await _seek(source, timestamp_s, seek_timeout_s)
        image = crop_to_roi(source.capture(), crop_roi)
        frames.append(_to_frame(image, timestamp_s, jpeg_quality))
        if on_status is not None:
            on_status(f"Extracted frame {len(frames)}...")
        index += 1

    logger.debug(
        "extracted %d frames from %.3fs to %.3fs (roi=%s)",
        len(frames),
        start_time_s,
        end_s,
        crop_roi,
    )
    return FrameSequence(frames=tuple(frames), roi=crop_roi)
