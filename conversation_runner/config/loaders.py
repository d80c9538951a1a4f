"""
Runner configuration file loading.

Relative paths are anchored at the project root (the directory holding
``conversation_runner/``), so ``config/runner.yaml`` works from any cwd.
``$VAR`` and ``${VAR}`` references are expanded before parsing; unknown
variables stay literal.
"""

import os
from pathlib import Path
from typing import Any, Dict

import yaml

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def resolve_config_path(path: str) -> str:
    """Absolute path for ``path``, relative paths taken from the project root."""
    candidate = Path(path)
    if candidate.is_absolute():
        return str(candidate)
    return str(PROJECT_ROOT / candidate)


def load_yaml_with_env_expansion(path: str) -> Dict[str, Any]:
    """
    Read a runner YAML file into a dict of config sections.

    Raises:
        FileNotFoundError: the file does not exist
        yaml.YAMLError: the file is not valid YAML
        ValueError: the document is not a mapping of sections
    """
    config_file = Path(path)
    if not config_file.is_file():
        raise FileNotFoundError(f"Runner configuration not found at: {path}")

    text = os.path.expandvars(config_file.read_text())
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise yaml.YAMLError(f"Error parsing runner configuration {path}: {exc}")

    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ValueError(f"Runner configuration {path} must be a mapping of sections, "
                         f"got {type(document).__name__}")
    return document
