"""Session configuration loaded from ``invoicegrid.yaml``."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

CONFIG_FILENAME = "invoicegrid.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "header_marker": "SR NO",
    "trailer_marker": "TOTAL",
    "initial_blank_rows": 10,
    "max_upload_bytes": 20 * 1024 * 1024,  # 20 MB
    "export_sheet_title": "Invoice",
    "logging_fsync": False,
    "logging_tail_bytes": 2_097_152,  # 2 MB
}


def load_config(session_dir: Path) -> dict[str, Any]:
    """Load configuration from ``invoicegrid.yaml``, with defaults.

    Args:
        session_dir: Directory holding the config file and the logs.

    Returns:
        Merged configuration dict.  Keys not in the defaults are kept.

    Raises:
        ValueError: The file does not contain a mapping.
    """
    config = dict(DEFAULT_CONFIG)
    config_path = session_dir / CONFIG_FILENAME
    if config_path.exists():
        user_config = yaml.safe_load(config_path.read_text()) or {}
        if not isinstance(user_config, dict):
            raise ValueError(f"{config_path} must contain a mapping")
        config.update(user_config)
    return config


def write_default_config(session_dir: Path) -> Path:
    """Write the default config to *session_dir* unless one already exists."""
    session_dir.mkdir(parents=True, exist_ok=True)
    config_path = session_dir / CONFIG_FILENAME
    if not config_path.exists():
        config_path.write_text(
            yaml.dump(DEFAULT_CONFIG, default_flow_style=False, sort_keys=False)
        )
    return config_path
