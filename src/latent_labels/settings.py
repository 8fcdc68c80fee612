"""
Inference settings loaded from config/inference.yaml.

Falls back to defaults when no settings file is found.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigurationError
from .posterior import DEFAULT_EPSILON, DEGENERATE_POLICIES, MISSING_POLICIES

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: Dict[str, Any] = {
    "epsilon": DEFAULT_EPSILON,
    "missing_policy": "raise",
    "degenerate_policy": "raise",
    "shard_size": None,
    "workers": None,
    "id_column": "subject_id",
}

DEFAULT_SETTINGS_PATHS = [
    "config/inference.yaml",
    os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "config/inference.yaml"),
]


def validate_settings(settings: Dict[str, Any]) -> list:
    """
    Validate merged settings.

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    epsilon = settings.get("epsilon")
    if not isinstance(epsilon, (int, float)) or isinstance(epsilon, bool) or not (0.0 < epsilon < 0.5):
        errors.append(f"epsilon must be a number in (0, 0.5), got {epsilon!r}")

    if settings.get("missing_policy") not in MISSING_POLICIES:
        errors.append(
            f"missing_policy must be one of {sorted(MISSING_POLICIES)}, got {settings.get('missing_policy')!r}"
        )
    if settings.get("degenerate_policy") not in DEGENERATE_POLICIES:
        errors.append(
            f"degenerate_policy must be one of {sorted(DEGENERATE_POLICIES)}, "
            f"got {settings.get('degenerate_policy')!r}"
        )

    for key in ("shard_size", "workers"):
        value = settings.get(key)
        if value is not None and (not isinstance(value, int) or isinstance(value, bool) or value < 1):
            errors.append(f"{key} must be a positive integer or null, got {value!r}")

    if not isinstance(settings.get("id_column"), str) or not settings.get("id_column"):
        errors.append("id_column must be a non-empty string")

    return errors


def load_inference_settings(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load inference settings, merging the file over DEFAULT_SETTINGS.

    Unknown keys are ignored.

    Args:
        path: Explicit settings file. When omitted, config/inference.yaml is
            looked up in the working directory, then at the project root.

    Returns:
        Settings dict

    Raises:
        ConfigurationError: If an explicit path is missing, the YAML is
            malformed, or a value is invalid
    """
    if path is not None:
        if not os.path.exists(path):
            raise ConfigurationError(f"settings file not found: {path}")
        candidates = [str(path)]
    else:
        candidates = DEFAULT_SETTINGS_PATHS

    raw: Dict[str, Any] = {}
    for candidate in candidates:
        if os.path.exists(candidate):
            with open(candidate, 'r') as f:
                try:
                    raw = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ConfigurationError(f"{candidate}: invalid YAML ({e})") from None
            if not isinstance(raw, dict):
                raise ConfigurationError(f"{candidate}: expected a mapping at top level")
            logger.debug("Loaded inference settings from %s", candidate)
            break
    else:
        logger.warning("No inference settings file found, using defaults")

    settings = dict(DEFAULT_SETTINGS)
    for key, value in raw.items():
        if key in DEFAULT_SETTINGS:
            settings[key] = value
        else:
            logger.debug("Ignoring unknown setting '%s'", key)

    if isinstance(settings["epsilon"], str):
        # PyYAML reads "1e-9" (no dot) as a string
        try:
            settings["epsilon"] = float(settings["epsilon"])
        except ValueError:
            pass

    errors = validate_settings(settings)
    if errors:
        raise ConfigurationError("invalid inference settings: " + "; ".join(errors))
    return settings
