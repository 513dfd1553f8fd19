"""Configuration module."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

_TRUE_VALUES = ("1", "true", "yes", "y", "on")


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses the bundled settings.yaml

    Returns:
        Configuration dictionary
    """
    if config_path is None:
        config_path = Path(__file__).parent / "settings.yaml"

    with open(config_path, "r") as f:
        config = yaml.safe_load(f) or {}

    for section in ("site", "browser", "crawler", "validation", "patterns", "logging"):
        if config.get(section) is None:
            config[section] = {}

    # Override with environment variables if present
    if "WEBSITE_URL" in os.environ:
        config["site"]["website_url"] = os.environ["WEBSITE_URL"]

    if "LOG_LEVEL" in os.environ:
        config["logging"]["level"] = os.environ["LOG_LEVEL"]

    if "BROWSER_HEADLESS" in os.environ:
        config["browser"]["headless"] = os.environ["BROWSER_HEADLESS"].strip().lower() in _TRUE_VALUES

    if "PATTERNS_FILE" in os.environ:
        config["patterns"]["file"] = os.environ["PATTERNS_FILE"]

    return config
