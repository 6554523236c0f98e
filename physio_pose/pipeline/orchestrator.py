#!/usr/bin/env python3
"""
Pose pipeline: admit -> preprocess -> detect -> map -> compute angles -> publish.

Exactly one frame is in the pipeline at a time. That is guaranteed by the
admission controller, so the pipeline itself holds no locks. Frame-local
failures end as a FAILED FrameResult and publish nothing, leaving the last
published result in place.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from physio_pose.errors import FrameError, NotReadyError
from physio_pose.metrics.calculator import JointAngleCalculator
from physio_pose.pose.detector_handle import DetectorHandle
from physio_pose.pose.keypoints import Pose, SideAngles
from physio_pose.preprocessing.frames import FrameTask
from physio_pose.preprocessing.preprocessor import Preprocessor
from physio_pose.projection import (
    DisplaySize,
    FrameGeometry,
    display_scale,
    model_to_source,
    source_to_display,
)

from .admission import AdmissionController
from .sources import FrameSource

logger = logging.getLogger(__name__)

# Consecutive frame timeouts that trigger a detector restart
TIMEOUT_RESTART_THRESHOLD = 2


class FrameStage(str, Enum):
    ADMITTED = "admitted"
    PREPROCESSING = "preprocessing"
    DETECTING = "detecting"
    MAPPING = "mapping"
    ANGLE_COMPUTING = "angle_computing"
    PUBLISHED = "published"
    DROPPED = "dropped"
    FAILED = "failed"


@dataclass(frozen=True)
class PipelineResult:
    """What the result sink receives for each completed frame."""

    sequence: int
    pose: Pose | None  # SOURCE space, None when no pose was detected
    shoulder_angles: SideAngles
    joint_angles: dict[str, SideAngles]
    geometry: FrameGeometry
    display_scale: tuple[float, float] | None = None
    timestamp_s: float | None = None

    def display_pose(self, display: DisplaySize) -> Pose | None:
        if self.pose is None:
            return None
        return source_to_display(self.pose, self.geometry, display)


@dataclass
class FrameResult:
    """Outcome of one admitted frame."""

    sequence: int
    stage: FrameStage
    result: PipelineResult | None = None
    error: Exception | None = None
    failed_stage: FrameStage | None = None

    @property
    def ok(self) -> bool:
        return self.stage == FrameStage.PUBLISHED


@dataclass
class PipelineStats:
    published: int = 0
    failed: int = 0
    timeouts: int = 0
    restarts: int = 0
    failures_by_stage: dict[str, int] = field(default_factory=dict)


class PosePipeline:
    """Runs admitted frames through the detector and publishes joint angles."""

    def __init__(
        self,
        detector: DetectorHandle,
        admission: AdmissionController,
        preprocessor: Preprocessor,
        calculator: JointAngleCalculator,
        sink: Callable[[PipelineResult], None] | None = None,
        display: DisplaySize | None = None,
        poll_interval_s: float = 0.005,
    ):
        """
        Args:
            detector: Injected detector handle (initialized by run() if needed)
            admission: Admission controller gating entry to the pipeline
            preprocessor: Frame preprocessor matching the estimator's input
            calculator: Joint angle calculator
            sink: Callback receiving each published PipelineResult
            display: Display surface size for display-space scale factors
            poll_interval_s: Sleep between empty pulls in run()
        """
        self.detector = detector
        self.admission = admission
        self.preprocessor = preprocessor
        self.calculator = calculator
        self.sink = sink
        self.display = display
        self.poll_interval_s = poll_interval_s
        self.last_result: PipelineResult | None = None
        self.stats = PipelineStats()
        self._stop_requested = False

    async def submit(self, task: FrameTask) -> FrameResult | None:
        """
        Push entry point: admit and process one arriving frame.

        Returns:
            FrameResult, or None if the frame was dropped at admission
        """
        if not self.admission.try_admit():
            return None
        return await self.process(task)

    async def process(self, task: FrameTask) -> FrameResult:
        """
        Run one admitted frame through every stage.

        The admission slot is released when this returns, on success or failure.
        If the frame is cancelled while inference is still running in the
        executor, the slot stays held until that inference finishes.
        """
        stage = FrameStage.PREPROCESSING
        try:
            prepared = self.preprocessor.prepare(task)

            stage = FrameStage.DETECTING
            model_pose = await self.detector.detect(prepared.tensor)
            geometry = prepared.geometry
            # Release the tensor as soon as inference is done
            del prepared

            stage = FrameStage.MAPPING
            pose = model_to_source(model_pose, geometry) if model_pose is not None else None
            scale = display_scale(geometry, self.display) if self.display is not None else None

            stage = FrameStage.ANGLE_COMPUTING
            if pose is not None:
                shoulder = self.calculator.shoulder_angles(pose)
                joints = self.calculator.calculate(pose)
            else:
                shoulder = SideAngles()
                joints = {joint: SideAngles() for joint in self.calculator.joints}

            result = PipelineResult(
                sequence=task.sequence,
                pose=pose,
                shoulder_angles=shoulder,
                joint_angles=joints,
                geometry=geometry,
                display_scale=scale,
                timestamp_s=task.timestamp_s,
            )
            self._publish(result)
            return FrameResult(task.sequence, FrameStage.PUBLISHED, result=result)

        except (FrameError, NotReadyError) as e:
            self.stats.failed += 1
            self.stats.failures_by_stage[stage.value] = (
                self.stats.failures_by_stage.get(stage.value, 0) + 1
            )
            logger.warning("Frame %d failed during %s: %s", task.sequence, stage.value, e)
            return FrameResult(task.sequence, FrameStage.FAILED, error=e, failed_stage=stage)

        finally:
            pending = self.detector.inference
            if pending is not None and not pending.done():
                pending.add_done_callback(lambda _f: self.admission.mark_complete())
            else:
                self.admission.mark_complete()

    def _publish(self, result: PipelineResult):
        self.last_result = result
        self.stats.published += 1
        if self.sink is not None:
            self.sink(result)

    def stop(self):
        """Ask run() to return after the current frame."""
        self._stop_requested = True

    async def run(
        self,
        source: FrameSource,
        max_frames: int | None = None,
        frame_timeout: float | None = None,
    ) -> int:
        """
        Pull frames from a source until it is exhausted, stopped or max_frames
        frames have been processed.

        Args:
            source: Frame source (already started)
            max_frames: Optional cap on processed frames
            frame_timeout: Optional wall-clock ceiling per frame in seconds

        Returns:
            Number of frames processed

        Raises:
            InitializationError: If the detector cannot be initialized
        """
        await self.detector.initialize()

        self._stop_requested = False
        processed = 0
        consecutive_timeouts = 0

        while not self._stop_requested:
            if max_frames is not None and processed >= max_frames:
                break
            if source.exhausted:
                break

            wait = self.admission.seconds_until_open()
            if wait > 0:
                await asyncio.sleep(wait)
                continue

            task = source.next_frame()
            if task is None:
                await asyncio.sleep(self.poll_interval_s)
                continue

            if not self.admission.try_admit():
                continue

            processed += 1
            try:
                if frame_timeout is not None:
                    await asyncio.wait_for(self.process(task), frame_timeout)
                else:
                    await self.process(task)
            except asyncio.TimeoutError:
                self.stats.timeouts += 1
                consecutive_timeouts += 1
                logger.warning(
                    "Frame %d exceeded %.2fs (%d in a row)",
                    task.sequence,
                    frame_timeout,
                    consecutive_timeouts,
                )
                # The worker thread cannot be interrupted; let it return first
                await self.detector.wait_idle()
                if consecutive_timeouts >= TIMEOUT_RESTART_THRESHOLD:
                    await self._restart_detector()
                    consecutive_timeouts = 0
                continue

            consecutive_timeouts = 0

        return processed

    async def _restart_detector(self):
        logger.warning("Restarting pose detector after repeated timeouts")
        self.stats.restarts += 1
        self.detector.dispose()
        await self.detector.initialize()
