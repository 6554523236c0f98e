#!/usr/bin/env python3
"""
Abstract base class for pose estimation capabilities.
"""

from abc import ABC, abstractmethod

import numpy as np

# Raw estimator output: (keypoint_index, x, y, score) in canonical index order
Estimate = tuple[int, float, float, float]


class PoseEstimatorBase(ABC):
    """
    Abstract base class for single-person 2D keypoint estimators.

    Subclasses receive a fixed-size (target_size, target_size, 3) uint8 tensor
    and return keypoints in the tensor's coordinate frame.
    """

    # "pixels", "normalized" or None to let the mapper decide per pose
    coordinate_contract: str | None = None

    # Channel order expected by estimate()
    channel_order = "rgb"

    def __init__(self, cfg: dict):
        """Initialize with configuration."""
        self.cfg = cfg
        self.model = None
        self.conf_min = cfg.get("conf_min", 0.2)
        self.target_size = int(cfg.get("target_size", 256))

    @abstractmethod
    def load_model(self):
        """Load the pose estimation model. Raises on missing assets."""
        pass

    @abstractmethod
    def estimate(self, tensor: np.ndarray) -> list[Estimate]:
        """
        Estimate keypoints for the most prominent person in the tensor.

        Args:
            tensor: Image of shape (target_size, target_size, 3), uint8

        Returns:
            List of (keypoint_index, x, y, score) tuples, empty if no person found
        """
        pass

    def close(self):
        """Release model resources."""
        self.model = None
