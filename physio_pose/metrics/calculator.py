#!/usr/bin/env python3
"""
Joint angle calculator for 2D pose keypoints.
"""

import numpy as np

from physio_pose.pose.keypoints import Keypoint, Pose, SideAngles

# Minimum keypoint score for a joint angle to be reported
DEFAULT_THRESHOLD = 0.15

# joint -> (reference, vertex, other) keypoint suffixes, same side
JOINT_DEFINITIONS = {
    "shoulder": ("hip", "shoulder", "elbow"),  # torso line vs upper arm
    "elbow": ("shoulder", "elbow", "wrist"),
    "hip": ("shoulder", "hip", "knee"),
    "knee": ("hip", "knee", "ankle"),
}

SIDES = ("left", "right")


def calculate_angle(a, b, c) -> float:
    """
    Calculate the angle at vertex b between vectors b->a and b->c.

    Args:
        a: Reference point (x, y)
        b: Vertex point (x, y)
        c: Other point (x, y)

    Returns:
        Angle in degrees in [0, 180]. If either vector has zero length the
        angle is defined as 0.
    """
    a = np.asarray(a, dtype=float)[:2]
    b = np.asarray(b, dtype=float)[:2]
    c = np.asarray(c, dtype=float)[:2]

    ba = a - b
    bc = c - b

    ba_norm = np.linalg.norm(ba)
    bc_norm = np.linalg.norm(bc)

    if ba_norm == 0 or bc_norm == 0:
        return 0.0

    # Clip before arccos, rounding can push the cosine just past +-1
    cos_theta = np.clip(np.dot(ba, bc) / (ba_norm * bc_norm), -1.0, 1.0)

    return float(np.degrees(np.arccos(cos_theta)))


def _confident(kp: Keypoint, threshold: float) -> bool:
    return kp.score > threshold


def calculate_side_angle(
    pose: Pose, joint: str, side: str, threshold: float = DEFAULT_THRESHOLD
) -> float | None:
    """
    Calculate one joint angle on one side.

    Returns:
        Angle in degrees, or None if any of the three keypoints is not confident
    """
    if joint not in JOINT_DEFINITIONS:
        raise ValueError(f"Unknown joint: {joint}")
    if side not in SIDES:
        raise ValueError(f"Unknown side: {side}")

    ref_name, vertex_name, other_name = JOINT_DEFINITIONS[joint]
    ref = pose.get(f"{side}_{ref_name}")
    vertex = pose.get(f"{side}_{vertex_name}")
    other = pose.get(f"{side}_{other_name}")

    if not all(_confident(kp, threshold) for kp in (ref, vertex, other)):
        return None

    return calculate_angle((ref.x, ref.y), (vertex.x, vertex.y), (other.x, other.y))


def calculate_joint_angles(
    pose: Pose, joint: str, threshold: float = DEFAULT_THRESHOLD
) -> SideAngles:
    """Calculate a joint angle for both sides independently."""
    return SideAngles(
        left=calculate_side_angle(pose, joint, "left", threshold),
        right=calculate_side_angle(pose, joint, "right", threshold),
    )


def calculate_shoulder_angles(
    pose: Pose, threshold: float = DEFAULT_THRESHOLD
) -> SideAngles:
    """
    Calculate shoulder flexion angles: vertex shoulder, reference hip, other elbow.

    The wrist is not needed. A side is None when its shoulder, elbow or hip
    score does not exceed the threshold.
    """
    return calculate_joint_angles(pose, "shoulder", threshold)


class JointAngleCalculator:
    """Calculate a configured set of joint angles for each pose."""

    def __init__(self, joints=("shoulder",), threshold: float = DEFAULT_THRESHOLD):
        """
        Initialize the calculator.

        Args:
            joints: Joint names from JOINT_DEFINITIONS
            threshold: Minimum keypoint score (exclusive)
        """
        unknown = [j for j in joints if j not in JOINT_DEFINITIONS]
        if unknown:
            raise ValueError(f"Unknown joint(s): {', '.join(unknown)}")

        self.joints = tuple(joints)
        self.threshold = threshold

    def shoulder_angles(self, pose: Pose) -> SideAngles:
        return calculate_shoulder_angles(pose, self.threshold)

    def calculate(self, pose: Pose) -> dict[str, SideAngles]:
        """Return {joint: SideAngles} for every configured joint."""
        return {
            joint: calculate_joint_angles(pose, joint, self.threshold)
            for joint in self.joints
        }
