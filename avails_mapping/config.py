"""Run configuration (YAML) and logging setup."""

import logging
from typing import Optional

import yaml

DEFAULT_CONFIG = {
    "template_version": None,
    "sheet_name": None,
    "header_row": 1,
    "output": "avails.xml",
    "provenance_report": None,
    "log_level": "INFO",
}


def load_config(config_path: Optional[str] = None) -> dict:
    """Load configuration from YAML, falling back to defaults."""
    config = dict(DEFAULT_CONFIG)
    if config_path:
        with open(config_path, "r") as f:
            user_cfg = yaml.safe_load(f) or {}
        config.update(user_cfg)
    return config


def setup_logging(level_str: str = "INFO"):
    """Configure logging."""
    level = getattr(logging, str(level_str).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S'
    )
