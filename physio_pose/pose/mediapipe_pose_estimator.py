#!/usr/bin/env python3
"""
MediaPipe Pose Landmarker estimator implementation.
"""

import logging
from pathlib import Path

import mediapipe as mp
import numpy as np
from mediapipe.tasks import python
from mediapipe.tasks.python import vision

from .estimator_base import Estimate, PoseEstimatorBase

logger = logging.getLogger(__name__)

# MediaPipe landmark index for each COCO-17 keypoint, in canonical order
MEDIAPIPE_TO_COCO = (
    0,  # nose
    2,  # left_eye
    5,  # right_eye
    7,  # left_ear
    8,  # right_ear
    11,  # left_shoulder
    12,  # right_shoulder
    13,  # left_elbow
    14,  # right_elbow
    15,  # left_wrist
    16,  # right_wrist
    23,  # left_hip
    24,  # right_hip
    25,  # left_knee
    26,  # right_knee
    27,  # left_ankle
    28,  # right_ankle
)


class MediaPipePoseEstimator(PoseEstimatorBase):
    """MediaPipe Pose Landmarker estimator. Emits normalized coordinates."""

    coordinate_contract = "normalized"
    channel_order = "rgb"

    def __init__(self, cfg: dict):
        """Initialize MediaPipe Pose estimator."""
        super().__init__(cfg)
        self.model_path = cfg.get(
            "mediapipe_model_path", "models/pose_landmarker_lite.task"
        )
        self.frame_interval_ms = int(cfg.get("frame_interval_ms", 33))
        self.last_timestamp_ms = 0

    def load_model(self):
        """Load MediaPipe Pose Landmarker model."""
        if not Path(self.model_path).exists():
            raise FileNotFoundError(
                f"MediaPipe model not found at {self.model_path}"
            )

        logger.info("Loading MediaPipe Pose Landmarker model: %s", self.model_path)
        base_options = python.BaseOptions(model_asset_path=self.model_path)
        options = vision.PoseLandmarkerOptions(
            base_options=base_options,
            running_mode=vision.RunningMode.VIDEO,
            num_poses=1,  # Single subject
            min_pose_detection_confidence=0.5,
            min_pose_presence_confidence=0.5,
            min_tracking_confidence=0.5,
        )
        self.model = vision.PoseLandmarker.create_from_options(options)
        self.last_timestamp_ms = 0

    def estimate(self, tensor: np.ndarray) -> list[Estimate]:
        """
        Run MediaPipe pose detection on an RGB tensor.

        Returns:
            List of (index, x, y, visibility) with x, y normalized to [0, 1]
        """
        if self.model is None:
            raise RuntimeError("MediaPipe Pose Landmarker not initialized")

        mp_image = mp.Image(
            image_format=mp.ImageFormat.SRGB, data=np.ascontiguousarray(tensor)
        )

        # Video mode requires strictly increasing timestamps
        self.last_timestamp_ms += self.frame_interval_ms
        detection_result = self.model.detect_for_video(mp_image, self.last_timestamp_ms)

        if not detection_result.pose_landmarks:
            return []

        landmarks = detection_result.pose_landmarks[0]
        estimates = []
        for coco_idx, mp_idx in enumerate(MEDIAPIPE_TO_COCO):
            landmark = landmarks[mp_idx]
            conf = landmark.visibility if landmark.visibility is not None else 1.0
            estimates.append((coco_idx, float(landmark.x), float(landmark.y), float(conf)))
        return estimates

    def close(self):
        """Release the landmarker."""
        if self.model is not None:
            self.model.close()
        self.model = None
