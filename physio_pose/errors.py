#!/usr/bin/env python3
"""
Exception types raised by the pose pipeline.

Frame-local failures derive from FrameError and are absorbed by the pipeline.
Lifecycle failures (InitializationError) propagate to the owning application.
"""


class PhysioPoseError(Exception):
    """Base class for all pipeline errors."""


class InitializationError(PhysioPoseError):
    """The pose estimator could not be constructed or its model not loaded."""


class NotReadyError(PhysioPoseError):
    """Detection was requested while the detector is not in the READY state."""


class FrameError(PhysioPoseError):
    """A single frame could not be processed and must be dropped."""

    def __init__(self, message: str, sequence: int | None = None):
        super().__init__(message)
        self.sequence = sequence


class DecodeError(FrameError):
    """Compressed frame data could not be decoded."""


class ResizeError(FrameError):
    """Frame has degenerate dimensions or a buffer of the wrong size."""


class DetectionError(FrameError):
    """The pose estimator failed on a frame or returned unusable values."""
