"""3-layer configuration system for stigmap.

Loads and merges configuration from:
1. Default settings (built-in)
2. Workspace config (.stigmap/config.yaml)
3. CLI parameters (override)
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Optional

import yaml

from .. import __version__

logger = logging.getLogger(__name__)

WORKSPACE_DIR = ".stigmap"

DEFAULT_CONFIG: dict = {
    "database": {
        "path": f"{WORKSPACE_DIR}/stigmap.db",
    },
    "catalog": {
        "reference_title": "NIST SP 800-53 Revision 4",
    },
    "compliance": {
        "include_not_applicable_as_compliant": False,
        "low_compliance_threshold": 80,
        "critical_compliance_threshold": 50,
    },
    "import": {
        "progress_interval": 10,
    },
    "output": {
        "format": "markdown",
        "directory": f"{WORKSPACE_DIR}/reports",
    },
    "logging": {
        "level": "INFO",
        "file": None,
    },
}


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts. Arrays are replaced, not merged."""
    result = {}
    for key in base:
        result[key] = base[key]
    for key, value in override.items():
        base_value = result.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            result[key] = deep_merge(base_value, value)
        else:
            result[key] = value
    return result


def load_workspace_config(workspace: Path) -> dict:
    """Load workspace configuration from .stigmap/config.yaml."""
    config_path = workspace / WORKSPACE_DIR / "config.yaml"
    if not config_path.exists():
        return {}
    try:
        content = config_path.read_text(encoding="utf-8-sig")  # utf-8-sig strips BOM
        data = yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        logger.warning("Ignoring invalid config %s: %s", config_path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config %s: top level is not a mapping", config_path)
        return {}
    return data


def get_effective_config(
    workspace: Path,
    cli_overrides: Optional[dict] = None,
) -> dict:
    """Get the fully resolved configuration for a workspace."""
    config = copy.deepcopy(DEFAULT_CONFIG)

    workspace_config = load_workspace_config(workspace)
    if workspace_config:
        config = deep_merge(config, workspace_config)

    if cli_overrides:
        config = deep_merge(config, cli_overrides)

    config["_workspace"] = str(workspace)
    return config


def resolve_path(config: dict, value: str) -> Path:
    """Resolve a config path relative to the workspace root."""
    path = Path(value).expanduser()
    if path.is_absolute():
        return path
    return Path(config.get("_workspace", ".")) / path


def database_url(config: dict) -> str:
    """SQLAlchemy URL for the configured database path."""
    raw = str(config["database"]["path"])
    if "://" in raw:
        return raw
    return f"sqlite:///{resolve_path(config, raw)}"


def initialize_workspace(workspace: Path) -> Path:
    """Create .stigmap/ with a starter config.yaml; existing config is kept."""
    ws_dir = workspace / WORKSPACE_DIR
    (ws_dir / "reports").mkdir(parents=True, exist_ok=True)

    config_path = ws_dir / "config.yaml"
    if not config_path.exists():
        config_path.write_text(
            "# stigmap workspace configuration\n"
            "\n"
            f"stigmap_version: \"{__version__}\"\n"
            "\n"
            "catalog:\n"
            "  reference_title: \"NIST SP 800-53 Revision 4\"\n"
            "\n"
            "compliance:\n"
            "  # Count Not_Applicable findings as compliant in percentages\n"
            "  include_not_applicable_as_compliant: false\n"
            "  low_compliance_threshold: 80\n"
            "  critical_compliance_threshold: 50\n",
            encoding="utf-8",
        )
    return config_path
