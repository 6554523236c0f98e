#!/usr/bin/env python3
"""
Visual utilities for drawing the skeleton and joint angles on preview frames.
"""

from typing import Optional, Tuple

import cv2
import numpy as np

from physio_pose.pose.keypoints import CONNECTIONS, Pose, SideAngles


def draw_skeleton(
    image: np.ndarray,
    pose: Pose | None,
    conf_threshold: float = 0.3,
    point_color: Tuple[int, int, int] = (0, 0, 255),
    line_color: Tuple[int, int, int] = (0, 255, 0),
    point_radius: int = 4,
    line_thickness: int = 2,
):
    """
    Draw skeleton on image (in-place).

    Args:
        image: BGR image in the same pixel space as the pose
        pose: Pose to draw, or None
        conf_threshold: Minimum confidence to draw a keypoint
        point_color: BGR color for keypoints
        line_color: BGR color for skeleton lines
        point_radius: Radius for keypoint circles
        line_thickness: Thickness for skeleton lines
    """
    if pose is None:
        return

    for name_a, name_b in CONNECTIONS:
        kp_a = pose.get(name_a)
        kp_b = pose.get(name_b)
        if kp_a.score >= conf_threshold and kp_b.score >= conf_threshold:
            cv2.line(
                image,
                (int(kp_a.x), int(kp_a.y)),
                (int(kp_b.x), int(kp_b.y)),
                line_color,
                line_thickness,
            )

    for kp in pose.keypoints:
        if kp.score >= conf_threshold:
            cv2.circle(image, (int(kp.x), int(kp.y)), point_radius, point_color, -1)


def overlay_text(
    image: np.ndarray,
    text: str,
    position: Tuple[int, int],
    font_scale: float = 0.7,
    color: Tuple[int, int, int] = (255, 255, 255),
    thickness: int = 2,
    bg_color: Optional[Tuple[int, int, int]] = (0, 0, 0),
) -> np.ndarray:
    """
    Overlay text on an image with optional background.

    Args:
        image: Input image
        text: Text to overlay
        position: (x, y) position for text
        font_scale: Font scale
        color: Text color (BGR)
        thickness: Text thickness
        bg_color: Optional background color

    Returns:
        Image with text overlay
    """
    font = cv2.FONT_HERSHEY_SIMPLEX

    (text_width, text_height), baseline = cv2.getTextSize(
        text, font, font_scale, thickness
    )

    x, y = position

    if bg_color is not None:
        cv2.rectangle(
            image,
            (x - 5, y - text_height - baseline - 5),
            (x + text_width + 5, y + baseline + 5),
            bg_color,
            -1,
        )

    cv2.putText(image, text, (x, y), font, font_scale, color, thickness, cv2.LINE_AA)

    return image


def draw_angles(image: np.ndarray, angles: SideAngles, label: str = "Shoulder") -> np.ndarray:
    """Write the left/right angles in the top-left corner. Absent sides are skipped."""
    y = 30
    for side in ("left", "right"):
        angle = angles.get(side)
        if angle is None:
            continue
        overlay_text(image, f"{side.capitalize()} {label}: {angle:.1f} deg", (10, y))
        y += 35
    return image
