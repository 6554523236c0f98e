#!/usr/bin/env python3
"""
Pose detector lifecycle management with a factory for estimation engines.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable

import numpy as np

from physio_pose.errors import DetectionError, InitializationError, NotReadyError
from physio_pose.projection import estimates_to_model_pose

from .estimator_base import PoseEstimatorBase
from .keypoints import Pose

logger = logging.getLogger(__name__)


def estimator_class(detector_type: str) -> type[PoseEstimatorBase]:
    """Resolve a detector type name. Backends are imported on demand."""
    if detector_type == "mediapipe":
        from .mediapipe_pose_estimator import MediaPipePoseEstimator

        return MediaPipePoseEstimator
    elif detector_type == "yolo":
        from .yolo_pose_estimator import YOLOPoseEstimator

        return YOLOPoseEstimator
    else:
        raise ValueError(f"Unknown pose detector type: {detector_type}")


def create_pose_estimator(detector_type: str, cfg: dict) -> PoseEstimatorBase:
    """
    Factory function to create a pose estimator based on type.

    Args:
        detector_type: Either 'yolo' or 'mediapipe'
        cfg: Detector configuration dictionary

    Returns:
        PoseEstimatorBase instance (model not loaded yet)
    """
    return estimator_class(detector_type)(cfg)


class DetectorState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    DISPOSED = "disposed"



def _retrieve_exception(task: asyncio.Future):
    # Mark the failure retrieved even when every waiter was cancelled
    if not task.cancelled():
        task.exception()


class DetectorHandle:
    """
    Owns one pose estimator and its lifecycle.

    States: UNINITIALIZED -> INITIALIZING -> READY -> DISPOSED. A failed
    initialization returns to UNINITIALIZED so it can be retried. Calling
    initialize() on a disposed handle builds a fresh estimator.

    At most one inference runs at a time. An inference whose caller was
    cancelled keeps running in its worker thread; the next detect() waits for
    it, and dispose() defers closing the estimator until it has finished.
    """

    def __init__(self, factory: Callable[[], PoseEstimatorBase]):
        """
        Args:
            factory: Zero-argument callable returning an unloaded estimator
        """
        self._factory = factory
        self._estimator: PoseEstimatorBase | None = None
        self._state = DetectorState.UNINITIALIZED
        self._init_task: asyncio.Task | None = None
        self._inference: asyncio.Future | None = None

    @property
    def state(self) -> DetectorState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == DetectorState.READY

    @property
    def inference(self) -> asyncio.Future | None:
        """Future of the most recent inference, done once its worker thread returns."""
        return self._inference

    @property
    def is_busy(self) -> bool:
        return self._inference is not None and not self._inference.done()

    async def initialize(self):
        """
        Construct the estimator and load its model.

        Returns immediately when already READY. Concurrent callers share a single
        in-flight initialization.

        Raises:
            InitializationError: If the estimator could not be built
        """
        if self._state == DetectorState.READY:
            return

        if self._init_task is None or self._init_task.done():
            self._state = DetectorState.INITIALIZING
            self._init_task = asyncio.ensure_future(self._load())
            self._init_task.add_done_callback(_retrieve_exception)

        # Shield so one cancelled waiter does not abort the shared load
        await asyncio.shield(self._init_task)

    async def _load(self):
        task = asyncio.current_task()
        loop = asyncio.get_running_loop()
        try:
            estimator = await loop.run_in_executor(None, self._build)
        except Exception as e:
            if self._init_task is task:
                self._init_task = None
                self._state = DetectorState.UNINITIALIZED
            logger.exception("Pose estimator initialization failed")
            raise InitializationError(f"Failed to initialize pose estimator: {e}") from e

        if self._init_task is not task:
            # dispose() was called while the model was loading
            estimator.close()
            raise InitializationError("Detector was disposed during initialization")

        self._init_task = None
        self._estimator = estimator
        self._state = DetectorState.READY
        logger.info("Pose estimator ready: %s", type(estimator).__name__)

    def _build(self) -> PoseEstimatorBase:
        estimator = self._factory()
        estimator.load_model()
        return estimator

    async def wait_idle(self):
        """Wait until no inference is running. Never raises the inference's error."""
        while self.is_busy:
            await asyncio.wait([self._inference])

    async def detect(self, tensor: np.ndarray) -> Pose | None:
        """
        Estimate a pose on a preprocessed square tensor.

        Returns:
            Pose in MODEL space, or None if no confident pose was found

        Raises:
            NotReadyError: If the detector is not READY
            DetectionError: If the estimator failed or returned unusable values
        """
        if self._state != DetectorState.READY or self._estimator is None:
            raise NotReadyError(f"Detector is not ready (state: {self._state.value})")

        await self.wait_idle()
        estimator = self._estimator
        if self._state != DetectorState.READY or estimator is None:
            raise NotReadyError(f"Detector is not ready (state: {self._state.value})")

        loop = asyncio.get_running_loop()
        self._inference = loop.run_in_executor(None, estimator.estimate, tensor)
        self._inference.add_done_callback(_retrieve_exception)
        try:
            # Shielded: cancelling the caller must not mark the thread finished
            estimates = await asyncio.shield(self._inference)
        except Exception as e:
            raise DetectionError(f"Pose estimation failed: {e}") from e

        if not estimates:
            return None

        try:
            if all(score < estimator.conf_min for _idx, _x, _y, score in estimates):
                return None
            return estimates_to_model_pose(
                estimates, int(tensor.shape[0]), estimator.coordinate_contract
            )
        except (TypeError, ValueError) as e:
            raise DetectionError(f"Malformed pose estimate: {e}") from e

    def dispose(self):
        """Release the estimator. Subsequent detect() calls raise NotReadyError."""
        estimator, self._estimator = self._estimator, None
        # An in-flight load sees this and closes what it built
        self._init_task = None
        self._state = DetectorState.DISPOSED

        if estimator is not None:
            if self.is_busy:
                self._inference.add_done_callback(lambda _f: estimator.close())
            else:
                estimator.close()
        logger.info("Pose estimator disposed")
