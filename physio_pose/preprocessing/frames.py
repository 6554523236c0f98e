#!/usr/bin/env python3
"""
Frame tasks and input adapters.

Still captures (compressed bytes) and raw stream buffers are both wrapped into
the same FrameTask shape. Each adapter also knows how to turn its task back
into an (H, W, C) uint8 pixel array for the preprocessor.
"""

import itertools
from dataclasses import dataclass
from enum import Enum

import cv2
import numpy as np

from physio_pose.errors import DecodeError, ResizeError


class PixelLayout(str, Enum):
    RGB = "rgb"
    RGBA = "rgba"
    BGR = "bgr"
    BGRA = "bgra"
    COMPRESSED = "compressed"  # JPEG/PNG bytes, decoded to BGR

    @property
    def channels(self) -> int:
        if self in (PixelLayout.RGBA, PixelLayout.BGRA):
            return 4
        return 3

    @property
    def is_compressed(self) -> bool:
        return self == PixelLayout.COMPRESSED


@dataclass
class FrameTask:
    """One admitted frame. Owned by the pipeline until published or dropped."""

    data: bytes | np.ndarray
    width: int
    height: int
    layout: PixelLayout
    sequence: int
    timestamp_s: float | None = None


class FrameAdapter:
    """Base adapter: wraps source data into FrameTasks with sequence numbers."""

    def __init__(self):
        self._sequence = itertools.count()

    def next_sequence(self) -> int:
        return next(self._sequence)

    def to_pixels(self, task: FrameTask) -> tuple[np.ndarray, PixelLayout]:
        """Return (H, W, C) uint8 pixels and their layout."""
        raise NotImplementedError


class RawPixelFrameAdapter(FrameAdapter):
    """Adapter for uncompressed pixel buffers delivered by a stream."""

    def wrap(
        self,
        data: bytes | np.ndarray,
        width: int,
        height: int,
        layout: PixelLayout | str,
        timestamp_s: float | None = None,
    ) -> FrameTask:
        layout = PixelLayout(layout)
        if layout.is_compressed:
            raise ValueError("RawPixelFrameAdapter cannot wrap compressed data")
        return FrameTask(data, int(width), int(height), layout, self.next_sequence(), timestamp_s)

    def to_pixels(self, task: FrameTask) -> tuple[np.ndarray, PixelLayout]:
        if task.width <= 0 or task.height <= 0:
            raise ResizeError(
                f"Degenerate frame size {task.width}x{task.height}", task.sequence
            )

        channels = task.layout.channels
        expected = task.width * task.height * channels
        if isinstance(task.data, np.ndarray):
            pixels = task.data
        else:
            pixels = np.frombuffer(task.data, dtype=np.uint8)

        if pixels.size != expected:
            raise ResizeError(
                f"Buffer holds {pixels.size} values, expected {expected} "
                f"for {task.width}x{task.height}x{channels}",
                task.sequence,
            )

        return pixels.reshape(task.height, task.width, channels).astype(np.uint8, copy=False), task.layout


class CompressedFrameAdapter(FrameAdapter):
    """Adapter for compressed still captures (JPEG/PNG bytes)."""

    def wrap(
        self,
        data: bytes,
        width: int,
        height: int,
        timestamp_s: float | None = None,
    ) -> FrameTask:
        return FrameTask(
            data, int(width), int(height), PixelLayout.COMPRESSED, self.next_sequence(), timestamp_s
        )

    def to_pixels(self, task: FrameTask) -> tuple[np.ndarray, PixelLayout]:
        buf = np.frombuffer(bytes(task.data), dtype=np.uint8)
        if buf.size == 0:
            raise DecodeError("Empty compressed frame", task.sequence)

        try:
            image = cv2.imdecode(buf, cv2.IMREAD_COLOR)
        except cv2.error as e:
            raise DecodeError(f"Failed to decode frame: {e}", task.sequence) from e

        if image is None:
            raise DecodeError("Malformed compressed frame", task.sequence)

        # Decoded size wins over capture metadata
        task.height, task.width = image.shape[:2]
        return image, PixelLayout.BGR
