"""Configuration loading and runtime directory bootstrapping."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG: dict[str, Any] = {
    "scheduler": {"max_depth": 5},
    "recovery": {
        "max_planning_retries": 2,
        "max_tool_retries": 1,
        "backoff_seconds": 0.5,
    },
    "loop": {"max_iterations": 200},
    "paths": {
        "workspace_dir": "workspace",
        "audit_log_path": "logs/audit.jsonl",
    },
    "logging": {"level": "INFO"},
    "models": {"llm": {"active_provider": "mock"}},
    "tools": {"run_shell": {"enabled": False, "timeout_seconds": 60}},
}


def load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML from file, returning empty mapping when missing."""
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    return data


def merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge dictionaries."""
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def ensure_runtime_dirs(root: Path, config: dict[str, Any]) -> dict[str, Path]:
    """Create the workspace and audit log directories; return resolved paths."""
    paths_cfg = config.get("paths", {})
    workspace_dir = (root / paths_cfg.get("workspace_dir", "workspace")).resolve()
    audit_log_path = (root / paths_cfg.get("audit_log_path", "logs/audit.jsonl")).resolve()

    workspace_dir.mkdir(parents=True, exist_ok=True)
    audit_log_path.parent.mkdir(parents=True, exist_ok=True)

    return {"workspace_dir": workspace_dir, "audit_log_path": audit_log_path}


def load_effective_config(root: Path, overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    """Merge built-in defaults, ``config/*.yaml`` under ``root`` and ``overrides``.

    ``models.yaml`` and ``tools.yaml`` populate the ``models`` and ``tools``
    sections respectively.
    """
    config_dir = root / "config"
    default_cfg = load_yaml(config_dir / "default.yaml")
    models_cfg = load_yaml(config_dir / "models.yaml")
    tools_cfg = load_yaml(config_dir / "tools.yaml")

    merged = merge_dicts(DEFAULT_CONFIG, default_cfg)
    merged = merge_dicts(merged, {"models": models_cfg, "tools": tools_cfg})
    if overrides:
        merged = merge_dicts(merged, overrides)
    return merged
