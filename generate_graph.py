#!/usr/bin/env python3
"""
Standalone script to generate graphs from session angle CSV files.
"""

import argparse
from pathlib import Path

from physio_pose.visualization.plotter import AnglePlotter


def parse_args():
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Generate graphs from joint angle measurements"
    )
    parser.add_argument("csv_file", type=str, help="Path to the _angles.csv file")
    parser.add_argument(
        "--joint", type=str, default="shoulder", help="Joint to plot (default: shoulder)"
    )
    parser.add_argument(
        "--output",
        type=str,
        help="Output path for the graph image (default: auto-generated)",
    )
    return parser.parse_args()


def main():
    """Generate graph from CSV file."""
    args = parse_args()

    csv_path = Path(args.csv_file)
    if not csv_path.exists():
        print(f"Error: CSV file '{csv_path}' does not exist.")
        return 1

    if not str(csv_path).endswith("_angles.csv"):
        print("Warning: Expected a file ending with '_angles.csv'")

    plotter = AnglePlotter()

    try:
        plotter.generate_offline_graph(str(csv_path), args.output, joint=args.joint)
        return 0
    except (OSError, ValueError) as e:
        print(f"Error generating graph: {e}")
        return 1


if __name__ == "__main__":
    exit(main())
