"""Unit tests for the pose pipeline orchestrator."""

import asyncio

import pytest

from physio_pose.errors import DecodeError, InitializationError, NotReadyError
from physio_pose.metrics.calculator import JointAngleCalculator
from physio_pose.pipeline.admission import StrideAdmissionController
from physio_pose.pipeline.orchestrator import FrameStage, PosePipeline
from physio_pose.pipeline.sources import FrameSource
from physio_pose.pose.detector_handle import DetectorHandle, DetectorState
from physio_pose.pose.keypoints import CoordinateSpace, SideAngles
from physio_pose.preprocessing.frames import CompressedFrameAdapter, RawPixelFrameAdapter
from physio_pose.preprocessing.preprocessor import Preprocessor
from physio_pose.projection import DisplaySize

# Shoulder at tensor centre, elbow level with it, hip straight below: 90 degrees
RIGHT_ANGLE_ESTIMATES = [
    (5, 0.5, 0.5, 0.9),  # left_shoulder
    (7, 0.7, 0.5, 0.9),  # left_elbow
    (11, 0.5, 0.8, 0.9),  # left_hip
]


class ListSource(FrameSource):
    """Hands out a fixed list of frames, then reports exhaustion."""

    def __init__(self, tasks):
        super().__init__()
        self.tasks = list(tasks)

    @property
    def exhausted(self):
        return not self.tasks

    def next_frame(self):
        return self.tasks.pop(0) if self.tasks else None


@pytest.fixture
def raw_adapter():
    return RawPixelFrameAdapter()


@pytest.fixture
def make_pipeline():
    def _make(factory, sink=None, stride=1, display=None):
        return PosePipeline(
            detector=DetectorHandle(factory),
            admission=StrideAdmissionController(stride=stride),
            preprocessor=Preprocessor(target_size=256),
            calculator=JointAngleCalculator(joints=("shoulder", "elbow")),
            sink=sink,
            display=display,
            poll_interval_s=0.001,
        )

    return _make


def frame_task(adapter, frame, timestamp_s=None):
    h, w = frame.shape[:2]
    return adapter.wrap(frame, w, h, "bgr", timestamp_s=timestamp_s)


class TestProcess:
    """Test a single admitted frame."""

    def test_publishes_source_space_pose(
        self, make_pipeline, fake_estimator_factory, raw_adapter, sample_frame
    ):
        published = []
        pipeline = make_pipeline(
            fake_estimator_factory(estimates=RIGHT_ANGLE_ESTIMATES), sink=published.append
        )

        async def go():
            await pipeline.detector.initialize()
            return await pipeline.submit(frame_task(raw_adapter, sample_frame, 1.5))

        outcome = asyncio.run(go())

        assert outcome.ok
        assert published == [outcome.result]
        assert pipeline.last_result is outcome.result

        pose = outcome.result.pose
        assert pose.space == CoordinateSpace.SOURCE
        shoulder = pose.get("left_shoulder")
        assert (shoulder.x, shoulder.y) == pytest.approx((320.0, 240.0))
        assert outcome.result.timestamp_s == 1.5

    def test_angles_computed_in_source_space(
        self, make_pipeline, fake_estimator_factory, raw_adapter, sample_frame
    ):
        pipeline = make_pipeline(fake_estimator_factory(estimates=RIGHT_ANGLE_ESTIMATES))

        async def go():
            await pipeline.detector.initialize()
            return await pipeline.submit(frame_task(raw_adapter, sample_frame))

        result = asyncio.run(go()).result
        assert result.shoulder_angles.left == pytest.approx(90.0)
        assert result.shoulder_angles.right is None
        assert set(result.joint_angles) == {"shoulder", "elbow"}

    def test_display_scale_attached(
        self, make_pipeline, fake_estimator_factory, raw_adapter, sample_frame
    ):
        pipeline = make_pipeline(
            fake_estimator_factory(estimates=RIGHT_ANGLE_ESTIMATES),
            display=DisplaySize(1280, 960),
        )

        async def go():
            await pipeline.detector.initialize()
            return await pipeline.submit(frame_task(raw_adapter, sample_frame))

        result = asyncio.run(go()).result
        assert result.display_scale == (2.0, 2.0)
        shoulder = result.display_pose(DisplaySize(1280, 960)).get("left_shoulder")
        assert (shoulder.x, shoulder.y) == pytest.approx((640.0, 480.0))

    def test_no_pose_publishes_empty_result(
        self, make_pipeline, fake_estimator_factory, raw_adapter, sample_frame
    ):
        published = []
        pipeline = make_pipeline(fake_estimator_factory(estimates=[]), sink=published.append)

        async def go():
            await pipeline.detector.initialize()
            return await pipeline.submit(frame_task(raw_adapter, sample_frame))

        outcome = asyncio.run(go())
        assert outcome.ok
        assert outcome.result.pose is None
        assert outcome.result.shoulder_angles == SideAngles()
        assert outcome.result.display_pose(DisplaySize(100, 100)) is None
        assert len(published) == 1

    def test_decode_failure_keeps_last_result(
        self, make_pipeline, fake_estimator_factory, raw_adapter, sample_frame
    ):
        published = []
        pipeline = make_pipeline(
            fake_estimator_factory(estimates=RIGHT_ANGLE_ESTIMATES), sink=published.append
        )
        bad = CompressedFrameAdapter().wrap(b"garbage", 640, 480)

        async def go():
            await pipeline.detector.initialize()
            first = await pipeline.submit(frame_task(raw_adapter, sample_frame))
            second = await pipeline.submit(bad)
            return first, second

        first, second = asyncio.run(go())

        assert second.stage == FrameStage.FAILED
        assert second.failed_stage == FrameStage.PREPROCESSING
        assert isinstance(second.error, DecodeError)
        assert pipeline.last_result is first.result
        assert len(published) == 1
        assert pipeline.stats.failures_by_stage == {"preprocessing": 1}
        assert not pipeline.admission.in_flight

    def test_uninitialized_detector_fails_frame(
        self, make_pipeline, fake_estimator_factory, raw_adapter, sample_frame
    ):
        pipeline = make_pipeline(fake_estimator_factory(estimates=RIGHT_ANGLE_ESTIMATES))
        outcome = asyncio.run(pipeline.submit(frame_task(raw_adapter, sample_frame)))

        assert outcome.stage == FrameStage.FAILED
        assert outcome.failed_stage == FrameStage.DETECTING
        assert isinstance(outcome.error, NotReadyError)
        assert pipeline.last_result is None
        assert not pipeline.admission.in_flight

    def test_burst_admits_single_frame(
        self, make_pipeline, fake_estimator_factory, raw_adapter, sample_frame
    ):
        factory = fake_estimator_factory(estimates=RIGHT_ANGLE_ESTIMATES, delay_s=0.05)
        pipeline = make_pipeline(factory)

        async def go():
            await pipeline.detector.initialize()
            tasks = [frame_task(raw_adapter, sample_frame) for _ in range(5)]
            return await asyncio.gather(*(pipeline.submit(t) for t in tasks))

        outcomes = asyncio.run(go())

        assert sum(o is not None for o in outcomes) == 1
        assert factory.created[0].estimate_calls == 1
        assert pipeline.admission.dropped == 4


class TestRun:
    """Test the pull loop."""

    def test_processes_all_frames(
        self, make_pipeline, fake_estimator_factory, raw_adapter, sample_frame
    ):
        published = []
        pipeline = make_pipeline(
            fake_estimator_factory(estimates=RIGHT_ANGLE_ESTIMATES), sink=published.append
        )
        source = ListSource(frame_task(raw_adapter, sample_frame) for _ in range(3))

        processed = asyncio.run(pipeline.run(source))

        assert processed == 3
        assert [r.sequence for r in published] == [0, 1, 2]
        assert pipeline.detector.state == DetectorState.READY

    def test_max_frames(self, make_pipeline, fake_estimator_factory, raw_adapter, sample_frame):
        pipeline = make_pipeline(fake_estimator_factory(estimates=RIGHT_ANGLE_ESTIMATES))
        source = ListSource(frame_task(raw_adapter, sample_frame) for _ in range(5))

        assert asyncio.run(pipeline.run(source, max_frames=2)) == 2
        assert len(source.tasks) == 3

    def test_stop_from_sink(self, make_pipeline, fake_estimator_factory, raw_adapter, sample_frame):
        pipeline = make_pipeline(fake_estimator_factory(estimates=RIGHT_ANGLE_ESTIMATES))
        pipeline.sink = lambda result: pipeline.stop()
        source = ListSource(frame_task(raw_adapter, sample_frame) for _ in range(5))

        assert asyncio.run(pipeline.run(source)) == 1

    def test_stride_drops_frames(
        self, make_pipeline, fake_estimator_factory, raw_adapter, sample_frame
    ):
        pipeline = make_pipeline(
            fake_estimator_factory(estimates=RIGHT_ANGLE_ESTIMATES), stride=2
        )
        source = ListSource(frame_task(raw_adapter, sample_frame) for _ in range(6))

        assert asyncio.run(pipeline.run(source)) == 3
        assert pipeline.admission.dropped == 3

    def test_initialization_failure_propagates(self, make_pipeline, fake_estimator_factory):
        pipeline = make_pipeline(fake_estimator_factory(fail_load=True))
        with pytest.raises(InitializationError):
            asyncio.run(pipeline.run(ListSource([])))

    def test_timeouts_never_overlap_inference(
        self, make_pipeline, fake_estimator_factory, raw_adapter, sample_frame
    ):
        factory = fake_estimator_factory(estimates=RIGHT_ANGLE_ESTIMATES, delay_s=0.08)
        pipeline = make_pipeline(factory)
        source = ListSource(frame_task(raw_adapter, sample_frame) for _ in range(3))

        processed = asyncio.run(pipeline.run(source, frame_timeout=0.02))

        assert processed == 3
        assert pipeline.stats.timeouts == 3
        assert pipeline.stats.restarts == 1
        assert pipeline.stats.published == 0
        assert len(factory.created) == 2
        first, second = factory.created
        assert first.closed
        assert (first.estimate_calls, second.estimate_calls) == (2, 1)
        assert first.peak_active == 1 and second.peak_active == 1
        assert not first.used_after_close
        assert not pipeline.admission.in_flight

    def test_slot_held_until_inference_finishes(
        self, make_pipeline, fake_estimator_factory, raw_adapter, sample_frame
    ):
        factory = fake_estimator_factory(estimates=RIGHT_ANGLE_ESTIMATES, delay_s=0.05)
        pipeline = make_pipeline(factory)

        async def go():
            await pipeline.detector.initialize()
            pending = asyncio.ensure_future(pipeline.submit(frame_task(raw_adapter, sample_frame)))
            await asyncio.sleep(0.01)
            pending.cancel()
            await asyncio.sleep(0)
            held = pipeline.admission.in_flight
            dropped = await pipeline.submit(frame_task(raw_adapter, sample_frame))
            await pipeline.detector.wait_idle()
            return held, dropped

        held, dropped = asyncio.run(go())

        assert held
        assert dropped is None
        assert factory.created[0].estimate_calls == 1
        assert not pipeline.admission.in_flight

    def test_estimator_errors_fail_frames(
        self, make_pipeline, fake_estimator_factory, raw_adapter, sample_frame
    ):
        pipeline = make_pipeline(fake_estimator_factory(fail_estimate=True))
        source = ListSource(frame_task(raw_adapter, sample_frame) for _ in range(3))

        processed = asyncio.run(pipeline.run(source))

        assert processed == 3
        assert pipeline.stats.failed == 3
        assert pipeline.stats.failures_by_stage == {"detecting": 3}
        assert pipeline.stats.published == 0
        assert pipeline.last_result is None
        assert pipeline.detector.is_ready
