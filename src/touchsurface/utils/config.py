"""
Configuration loading.
Reads the YAML config and validates known sections with a light schema.

Type problems are reported as warnings; component configs fall back to
their own defaults for anything missing.
"""

import os
import logging

import yaml

logger = logging.getLogger(__name__)

_BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
DEFAULT_CONFIG_PATH = os.path.join(_BASE_DIR, "config", "config.yaml")

# Schema: known sections and the expected types of their critical fields
_CONFIG_SCHEMA = {
    "sensor": {
        "color_width": int,
        "color_height": int,
        "depth_width": int,
        "depth_height": int,
        "require_body_index": bool,
    },
    "shape_detection": {
        "min_vertices": int,
        "max_vertices": int,
        "min_size": int,
        "epsilon_ratio": float,
        "retrieval": str,
        "twin_margin": int,
    },
    "classifier": {
        "model_path": str,
        "inflate_ratio": float,
        "svm_c": float,
    },
    "mapping": {
        "pool_slots": int,
    },
    "fingertip": {
        "min_circularity": float,
        "min_area": float,
    },
    "contact": {
        "threshold_mm": float,
    },
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base dict."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def validate_config(data: dict) -> list:
    """Check known sections against the schema.

    Returns:
        List of human-readable warnings (empty when valid)
    """
    warnings = []
    for section_name, fields in _CONFIG_SCHEMA.items():
        section = data.get(section_name)
        if section is None:
            continue
        if not isinstance(section, dict):
            warnings.append(f"Section '{section_name}' should be a dict, got {type(section).__name__}")
            continue
        for field_name, expected_type in fields.items():
            if field_name not in section:
                continue
            value = section[field_name]
            # Allow int where float is expected
            if expected_type is float and isinstance(value, (int, float)) and not isinstance(value, bool):
                continue
            if expected_type is int and isinstance(value, bool):
                warnings.append(f"{section_name}.{field_name}: expected int, got bool ({value!r})")
                continue
            if not isinstance(value, expected_type):
                warnings.append(
                    f"{section_name}.{field_name}: expected {expected_type.__name__}, "
                    f"got {type(value).__name__} ({value!r})"
                )

    for w in warnings:
        logger.warning("Config validation: %s", w)
    return warnings


def load_config(config_path=None, overrides=None) -> dict:
    """Load configuration from a YAML file.

    Args:
        config_path: Path to YAML file (defaults to config/config.yaml)
        overrides: Optional dict merged on top of the file contents

    Returns:
        Configuration dictionary (empty when the file is missing)
    """
    config_path = config_path or DEFAULT_CONFIG_PATH

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
        logger.info("Loaded config from %s", config_path)
    except FileNotFoundError:
        logger.warning("Config file not found: %s, using defaults", config_path)
        data = {}

    if not isinstance(data, dict):
        logger.warning("Config root should be a mapping, got %s; using defaults",
                       type(data).__name__)
        data = {}

    if overrides:
        data = _deep_merge(data, overrides)

    validate_config(data)
    return data


def get_value(data: dict, key_path: str, default=None):
    """Get nested config value using dot notation: 'contact.threshold_mm'."""
    value = data
    for key in key_path.split("."):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value
