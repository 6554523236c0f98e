#!/usr/bin/env python3
"""
Frame sources behind a single pull interface.

next_frame() returns None or the newest frame, never a backlog. Push-style
streams write into a depth-1 slot that each new frame overwrites.
"""

import logging
import threading
import time
from typing import Callable

import cv2
import numpy as np

from physio_pose.preprocessing.frames import (
    CompressedFrameAdapter,
    FrameTask,
    PixelLayout,
    RawPixelFrameAdapter,
)

logger = logging.getLogger(__name__)


class FrameSource:
    """Pull interface shared by still-capture and streaming sources."""

    def __init__(self):
        self.started = False

    def start(self) -> bool:
        self.started = True
        return True

    def stop(self):
        self.started = False

    @property
    def exhausted(self) -> bool:
        """True once the source will never deliver another frame."""
        return False

    def next_frame(self) -> FrameTask | None:
        raise NotImplementedError


class LatestFrameBuffer(FrameSource):
    """Depth-1 buffer fed by a stream callback."""

    def __init__(self):
        super().__init__()
        self._adapter = RawPixelFrameAdapter()
        self._slot: FrameTask | None = None
        self._lock = threading.Lock()
        self.pushed = 0
        self.overwritten = 0

    def push(
        self,
        data: bytes | np.ndarray,
        width: int,
        height: int,
        layout: PixelLayout | str,
        timestamp_s: float | None = None,
    ):
        """Stream callback: replace whatever frame is waiting with this one."""
        task = self._adapter.wrap(data, width, height, layout, timestamp_s)
        with self._lock:
            if self._slot is not None:
                self.overwritten += 1
            self._slot = task
            self.pushed += 1

    def next_frame(self) -> FrameTask | None:
        with self._lock:
            task, self._slot = self._slot, None
        return task

    def has_pending(self) -> bool:
        with self._lock:
            return self._slot is not None


class StillCaptureSource(FrameSource):
    """
    On-demand still capture.

    `capture` returns (width, height, compressed_bytes), or None when no
    picture could be taken.
    """

    def __init__(self, capture: Callable[[], tuple[int, int, bytes] | None]):
        super().__init__()
        self._capture = capture
        self._adapter = CompressedFrameAdapter()

    def next_frame(self) -> FrameTask | None:
        result = self._capture()
        if result is None:
            return None
        width, height, data = result
        return self._adapter.wrap(data, width, height, timestamp_s=time.monotonic())


class VideoCaptureSource(LatestFrameBuffer):
    """OpenCV camera or video file read on a background thread."""

    def __init__(self, device: int | str, realtime: bool | None = None):
        """
        Args:
            device: Camera index or video file path
            realtime: Pace reads at the file's FPS. Defaults to True for files.
        """
        super().__init__()
        self.device = device
        self.realtime = isinstance(device, str) if realtime is None else realtime
        self.cap: cv2.VideoCapture | None = None
        self.fps = 30.0
        self._stop = threading.Event()
        self._finished = threading.Event()
        self._th: threading.Thread | None = None

    def start(self) -> bool:
        self.cap = cv2.VideoCapture(self.device)
        if not self.cap.isOpened():
            logger.error("Could not open video source: %s", self.device)
            self.cap.release()
            self.cap = None
            return False

        fps = self.cap.get(cv2.CAP_PROP_FPS)
        if fps and fps > 0:
            self.fps = fps

        self._stop.clear()
        self._finished.clear()
        self._th = threading.Thread(target=self._run, daemon=True)
        self._th.start()
        self.started = True
        return True

    def _run(self):
        t0 = time.monotonic()
        frame_idx = 0
        while not self._stop.is_set():
            ret, frame = self.cap.read()
            if not ret or frame is None:
                break

            h, w = frame.shape[:2]
            self.push(frame, w, h, PixelLayout.BGR, timestamp_s=frame_idx / self.fps)
            frame_idx += 1

            if self.realtime:
                delay = t0 + frame_idx / self.fps - time.monotonic()
                if delay > 0:
                    time.sleep(delay)

        self._finished.set()

    def stop(self):
        self._stop.set()
        if self._th is not None:
            self._th.join(timeout=1.0)
        if self.cap is not None:
            self.cap.release()
        self.cap = None
        self.started = False

    @property
    def exhausted(self) -> bool:
        return self._finished.is_set() and not self.has_pending()
