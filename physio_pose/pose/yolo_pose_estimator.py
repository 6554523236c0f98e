#!/usr/bin/env python3
"""
YOLO-Pose estimator implementation.
"""

import logging

import numpy as np
import torch
from ultralytics import YOLO

from .estimator_base import Estimate, PoseEstimatorBase

logger = logging.getLogger(__name__)


def select_device(device_str: str = "auto") -> str:
    """Resolve 'auto' to the best available torch device."""
    if device_str != "auto":
        return device_str
    if torch.cuda.is_available():
        return "cuda"
    if torch.backends.mps.is_available():
        return "mps"
    return "cpu"


class YOLOPoseEstimator(PoseEstimatorBase):
    """YOLO-Pose estimator. Emits COCO-17 keypoints in tensor pixels."""

    coordinate_contract = "pixels"
    # Ultralytics treats numpy input as BGR
    channel_order = "bgr"

    def __init__(self, cfg: dict):
        """Initialize YOLO-Pose estimator."""
        super().__init__(cfg)
        self.model_path = cfg.get("pose_model", "models/yolo11n-pose.pt")
        self.device = None

    def load_model(self):
        """Load YOLO-Pose model."""
        logger.info("Loading YOLO-Pose model: %s", self.model_path)
        self.device = select_device(self.cfg.get("device", "auto"))
        self.model = YOLO(self.model_path)

    def estimate(self, tensor: np.ndarray) -> list[Estimate]:
        """
        Run YOLO pose detection on the tensor.

        Returns:
            List of (index, x, y, conf) for the first detected person, or []
        """
        if self.model is None:
            raise RuntimeError("YOLO-Pose model not initialized")

        results = self.model(
            tensor,
            imgsz=self.target_size,
            conf=self.conf_min,
            device=self.device,
            verbose=False,
        )

        if results and len(results) > 0:
            result = results[0]
            if hasattr(result, "keypoints") and result.keypoints is not None:
                kpts_data = result.keypoints.data
                if kpts_data.shape[0] > 0:  # At least one person detected
                    # First person only, shape (17, 3): x, y, conf
                    kpts = kpts_data[0].cpu().numpy()
                    return [
                        (idx, float(x), float(y), float(conf))
                        for idx, (x, y, conf) in enumerate(kpts)
                    ]
        return []
