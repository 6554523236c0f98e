"""Pytest configuration and shared fixtures."""

import sys
import threading
import time
from pathlib import Path

import numpy as np
import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from physio_pose.pose.estimator_base import PoseEstimatorBase  # noqa: E402
from physio_pose.pose.keypoints import (  # noqa: E402
    KEYPOINT_INDEX,
    CoordinateSpace,
    Pose,
)

# Standing subject, arms slightly away from the body. Format: x, y, confidence
SAMPLE_KEYPOINTS = [
    [100, 200, 0.9],  # 0: nose
    [90, 220, 0.8],  # 1: left_eye
    [110, 220, 0.8],  # 2: right_eye
    [85, 230, 0.7],  # 3: left_ear
    [115, 230, 0.7],  # 4: right_ear
    [80, 280, 0.85],  # 5: left_shoulder
    [120, 280, 0.85],  # 6: right_shoulder
    [75, 350, 0.8],  # 7: left_elbow
    [125, 350, 0.8],  # 8: right_elbow
    [70, 420, 0.75],  # 9: left_wrist
    [130, 420, 0.75],  # 10: right_wrist
    [85, 380, 0.9],  # 11: left_hip
    [115, 380, 0.9],  # 12: right_hip
    [80, 450, 0.85],  # 13: left_knee
    [120, 450, 0.85],  # 14: right_knee
    [75, 520, 0.8],  # 15: left_ankle
    [125, 520, 0.8],  # 16: right_ankle
]


class FakeEstimator(PoseEstimatorBase):
    """In-memory estimator returning canned (index, x, y, score) estimates."""

    coordinate_contract = None

    def __init__(self, cfg: dict):
        super().__init__(cfg)
        self.estimates = cfg.get("estimates", [])
        self.fail_load = cfg.get("fail_load", False)
        self.delay_s = cfg.get("delay_s", 0.0)
        self.fail_estimate = cfg.get("fail_estimate", False)
        self.load_calls = 0
        self.estimate_calls = 0
        self.closed = False
        self.used_after_close = False
        self.last_tensor_shape = None
        # Concurrent estimate() calls, tracked across worker threads
        self.active = 0
        self.peak_active = 0
        self._lock = threading.Lock()

    def load_model(self):
        self.load_calls += 1
        if self.delay_s:
            time.sleep(self.delay_s)
        if self.fail_load:
            raise FileNotFoundError("models/missing.task")
        self.model = object()

    def estimate(self, tensor):
        with self._lock:
            self.estimate_calls += 1
            self.active += 1
            self.peak_active = max(self.peak_active, self.active)
            if self.closed:
                self.used_after_close = True
        try:
            self.last_tensor_shape = tensor.shape
            if self.delay_s:
                time.sleep(self.delay_s)
            if self.closed:
                self.used_after_close = True
            if self.fail_estimate:
                raise RuntimeError("inference crashed")
            return list(self.estimates)
        finally:
            with self._lock:
                self.active -= 1

    def close(self):
        self.closed = True
        super().close()


@pytest.fixture
def sample_estimates():
    """Raw estimator output for the sample subject, in pixels."""
    return [(idx, float(x), float(y), float(s)) for idx, (x, y, s) in enumerate(SAMPLE_KEYPOINTS)]


@pytest.fixture
def sample_pose(sample_estimates):
    """Sample pose in SOURCE space."""
    return Pose.from_estimates(sample_estimates, space=CoordinateSpace.SOURCE)


@pytest.fixture
def make_pose():
    """
    Build a pose from {name: (x, y, score)}; unspecified keypoints get
    `default_score` at the origin.
    """

    def _make(points: dict, default_score: float = 0.9, space=CoordinateSpace.SOURCE) -> Pose:
        estimates = [(idx, 0.0, 0.0, default_score) for idx in range(len(SAMPLE_KEYPOINTS))]
        for name, (x, y, score) in points.items():
            estimates[KEYPOINT_INDEX[name]] = (KEYPOINT_INDEX[name], x, y, score)
        return Pose.from_estimates(estimates, space=space)

    return _make


@pytest.fixture
def fake_estimator_factory():
    """Return a factory that records every FakeEstimator it builds."""
    created = []

    def _factory(**cfg):
        def build():
            est = FakeEstimator(cfg)
            created.append(est)
            return est

        build.created = created
        return build

    return _factory


@pytest.fixture
def sample_frame():
    """Create a sample 640x480 BGR video frame for testing."""
    frame = np.zeros((480, 640, 3), dtype=np.uint8)
    frame[100:200, 100:200] = [255, 0, 0]  # Blue square
    frame[250:350, 250:350] = [0, 255, 0]  # Green square
    return frame


@pytest.fixture
def temp_output_dir(tmp_path):
    """Create a temporary output directory for tests."""
    output_dir = tmp_path / "test_output"
    output_dir.mkdir()
    return output_dir
