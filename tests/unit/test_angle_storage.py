"""Unit tests for AngleLogger."""

import csv

from physio_pose.metrics.storage import AngleLogger
from physio_pose.pose.keypoints import SideAngles


def read_rows(path):
    with open(path) as f:
        return list(csv.reader(f))


class TestAngleLogger:
    """Test the AngleLogger class."""

    def test_init_creates_files(self, temp_output_dir):
        """Test that initialization creates the correct files."""
        logger = AngleLogger("session.mp4", str(temp_output_dir))

        assert logger.session_name == "session"
        assert logger.output_dir == temp_output_dir
        assert logger.angles_file.exists()
        assert logger.landmarks_file.exists()

        logger.close()

    def test_log_angles(self, temp_output_dir):
        """Test logging joint angle measurements."""
        logger = AngleLogger("session", str(temp_output_dir), joints=("shoulder", "elbow"))

        logger.log_angles(
            0,
            0.0,
            0.81234,
            {"shoulder": SideAngles(45.5, 90.25), "elbow": SideAngles(170.0, 165.126)},
        )
        logger.log_angles(1, 33.3, 0.7, {"shoulder": SideAngles(left=None, right=88.0)})
        logger.log_angles(2, 66.6, None, {})  # No pose found
        logger.close()

        rows = read_rows(logger.angles_file)
        assert len(rows) == 4  # Header + 3 data rows
        assert rows[0] == [
            "frame_number",
            "timestamp_ms",
            "pose_score",
            "left_shoulder",
            "right_shoulder",
            "left_elbow",
            "right_elbow",
        ]
        assert rows[1] == ["0", "0.00", "0.8123", "45.50", "90.25", "170.00", "165.13"]
        # Absent angles are empty cells, not zero
        assert rows[2] == ["1", "33.30", "0.7000", "", "88.00", "", ""]
        assert rows[3] == ["2", "66.60", "", "", "", "", ""]

    def test_log_landmarks(self, temp_output_dir, sample_pose):
        """Test logging all keypoints of a pose."""
        logger = AngleLogger("session", str(temp_output_dir))
        logger.log_landmarks(3, 100.0, sample_pose)
        logger.close()

        rows = read_rows(logger.landmarks_file)
        assert rows[0] == [
            "frame_number",
            "timestamp_ms",
            "landmark_index",
            "landmark_name",
            "x",
            "y",
            "score",
        ]
        assert len(rows) == 18
        assert rows[6] == ["3", "100.00", "5", "left_shoulder", "80.000000", "280.000000", "0.850000"]

    def test_output_dir_created(self, tmp_path):
        logger = AngleLogger("session", str(tmp_path / "nested" / "out"))
        assert logger.angles_file.parent.is_dir()
        logger.close()
