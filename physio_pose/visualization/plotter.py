#!/usr/bin/env python3
"""
Metrics visualization module for plotting joint angles over time.
"""

from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402

SIDE_COLORS = {"left": "tab:blue", "right": "tab:red"}


class AnglePlotter:
    """Create graphs from a session's angles CSV."""

    def generate_offline_graph(
        self, csv_path: str, output_path: str | None = None, joint: str = "shoulder"
    ) -> Path:
        """
        Generate a static graph of one joint's angles from an angles CSV file.

        Args:
            csv_path: Path to the _angles.csv file
            output_path: Optional output path for the graph image
            joint: Joint whose left/right columns are plotted

        Returns:
            Path of the saved graph
        """
        df = pd.read_csv(csv_path)

        columns = [f"left_{joint}", f"right_{joint}"]
        missing = [c for c in columns if c not in df.columns]
        if missing:
            raise ValueError(f"CSV has no column(s): {', '.join(missing)}")

        plt.figure(figsize=(12, 6))

        for side, column in zip(("left", "right"), columns):
            # Empty cells are absent measurements
            values = pd.to_numeric(df[column], errors="coerce")
            if values.notna().any():
                plt.plot(
                    df["timestamp_ms"],
                    values,
                    label=f"{side.capitalize()} {joint} (degrees)",
                    color=SIDE_COLORS[side],
                    linewidth=2,
                    marker="o",
                    markersize=3,
                )

        plt.xlabel("Time (ms)", fontsize=12)
        plt.ylabel("Angle (degrees)", fontsize=12)
        plt.title(f"{joint.capitalize()} Angles Over Time", fontsize=14, fontweight="bold")
        plt.legend(loc="upper right", fontsize=10)
        plt.grid(True, alpha=0.3)

        # Joint angles are in [0, 180]
        plt.ylim(0, 180)

        if output_path is None:
            csv_path = Path(csv_path)
            output_path = csv_path.parent / f"{csv_path.stem}_graph.png"

        plt.savefig(output_path, dpi=150, bbox_inches="tight")
        plt.close()

        print(f"Graph saved to: {output_path}")
        return Path(output_path)
