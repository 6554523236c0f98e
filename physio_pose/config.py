#!/usr/bin/env python3
"""
Configuration loading. YAML files are merged over the built-in defaults.
"""

import copy
from pathlib import Path

import yaml

DEFAULT_CONFIG = {
    "detector": {
        "type": "yolo",
        "pose_model": "models/yolo11n-pose.pt",
        "mediapipe_model_path": "models/pose_landmarker_lite.task",
        "conf_min": 0.2,
        "device": "auto",
    },
    "preprocess": {
        "target_size": 256,
    },
    "admission": {
        "mode": "interval",
        "interval_ms": 300,
        "stride": 2,
    },
    "angles": {
        "threshold": 0.15,
        "joints": ["shoulder"],
    },
    "display": {
        "width": 1280,
        "height": 720,
    },
    "metrics": {
        "window_size": 3,
        "movement_threshold": 10.0,
    },
}


def _merge(base: dict, override: dict) -> dict:
    """Recursively merge override into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def validate_config(cfg: dict) -> dict:
    """Reject values the pipeline cannot run with."""
    admission = cfg["admission"]
    if admission["mode"] not in ("interval", "stride"):
        raise ValueError(f"Unknown admission mode: {admission['mode']}")
    if admission["interval_ms"] <= 0:
        raise ValueError("admission.interval_ms must be positive")
    if int(admission["stride"]) < 1:
        raise ValueError("admission.stride must be >= 1")

    if int(cfg["preprocess"]["target_size"]) <= 0:
        raise ValueError("preprocess.target_size must be positive")

    threshold = cfg["angles"]["threshold"]
    if not 0.0 <= threshold < 1.0:
        raise ValueError("angles.threshold must be in [0, 1)")

    if cfg["detector"]["type"] not in ("yolo", "mediapipe"):
        raise ValueError(f"Unknown detector type: {cfg['detector']['type']}")

    return cfg


def load_config(config_path: Path | str | None = None) -> dict:
    """
    Load configuration from a YAML file merged over DEFAULT_CONFIG.

    Args:
        config_path: YAML file, or None for the defaults only

    Raises:
        FileNotFoundError: If config_path does not exist
        ValueError: If a setting is invalid
    """
    if config_path is None:
        return validate_config(copy.deepcopy(DEFAULT_CONFIG))

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        user_cfg = yaml.safe_load(f) or {}

    return validate_config(_merge(DEFAULT_CONFIG, user_cfg))
