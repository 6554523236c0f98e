#!/usr/bin/env python3
"""
Frame preprocessing: decode, resize to the square model input, fix channels.
"""

import logging
from dataclasses import dataclass

import cv2
import numpy as np

from physio_pose.errors import ResizeError
from physio_pose.projection import FrameGeometry

from .frames import CompressedFrameAdapter, FrameTask, PixelLayout, RawPixelFrameAdapter

logger = logging.getLogger(__name__)

# (source layout, estimator channel order) -> cv2 conversion code, None = as is
_COLOR_CONVERSIONS = {
    (PixelLayout.RGB, "rgb"): None,
    (PixelLayout.RGB, "bgr"): cv2.COLOR_RGB2BGR,
    (PixelLayout.RGBA, "rgb"): cv2.COLOR_RGBA2RGB,
    (PixelLayout.RGBA, "bgr"): cv2.COLOR_RGBA2BGR,
    (PixelLayout.BGR, "rgb"): cv2.COLOR_BGR2RGB,
    (PixelLayout.BGR, "bgr"): None,
    (PixelLayout.BGRA, "rgb"): cv2.COLOR_BGRA2RGB,
    (PixelLayout.BGRA, "bgr"): cv2.COLOR_BGRA2BGR,
}


@dataclass
class PreparedFrame:
    """Model-ready tensor plus what is needed to map results back."""

    tensor: np.ndarray
    geometry: FrameGeometry
    sequence: int


class Preprocessor:
    """Turns a FrameTask into a (target_size, target_size, 3) uint8 tensor."""

    def __init__(self, target_size: int = 256, channel_order: str = "rgb"):
        if target_size <= 0:
            raise ValueError(f"target_size must be positive, got {target_size}")
        if channel_order not in ("rgb", "bgr"):
            raise ValueError(f"Unknown channel order: {channel_order}")
        self.target_size = int(target_size)
        self.channel_order = channel_order
        self._raw_adapter = RawPixelFrameAdapter()
        self._compressed_adapter = CompressedFrameAdapter()

    def prepare(self, task: FrameTask) -> PreparedFrame:
        """
        Decode (if needed), resize and channel-convert one frame.

        The whole frame is resized, not cropped, so the tensor keeps the full
        field of view and the geometry records separate x and y scale factors.

        Raises:
            DecodeError: Compressed data is malformed
            ResizeError: Frame has zero size or a mismatched buffer
        """
        adapter = self._compressed_adapter if task.layout.is_compressed else self._raw_adapter
        pixels, layout = adapter.to_pixels(task)

        h, w = pixels.shape[:2]
        if h == 0 or w == 0:
            raise ResizeError(f"Degenerate frame size {w}x{h}", task.sequence)

        # Resize first so the channel conversion runs at target resolution
        resized = cv2.resize(
            pixels, (self.target_size, self.target_size), interpolation=cv2.INTER_LINEAR
        )
        del pixels

        code = _COLOR_CONVERSIONS[(layout, self.channel_order)]
        tensor = resized if code is None else cv2.cvtColor(resized, code)
        del resized

        geometry = FrameGeometry(w, h, self.target_size)
        logger.debug(
            "Frame %d: %dx%d %s -> %d^2 (scale %.3f, %.3f)",
            task.sequence,
            w,
            h,
            layout.value,
            self.target_size,
            geometry.scale_x,
            geometry.scale_y,
        )
        return PreparedFrame(tensor=tensor, geometry=geometry, sequence=task.sequence)
