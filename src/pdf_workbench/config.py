"""
Configuration helpers for YAML-backed command options.

Precedence is always: built-in defaults < YAML config < explicit CLI flags.
"""

from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any

import yaml

from .compress import PRESET_LOOKUP
from .layout import ORIENTATIONS, PAGE_PRESETS, FitMode
from .utils import UserError


DEFAULT_COMPRESS: dict[str, Any] = {
    "preset": "balanced",
}

DEFAULT_IMAGES: dict[str, Any] = {
    "page_size": "letter",
    "orientation": "portrait",
    "fit": "fit",
    "margin": 36,
}

DEFAULT_SPLIT: dict[str, Any] = {
    "pages_per_file": None,
}

DEFAULT_CONFIG: dict[str, dict[str, Any]] = {
    "compress": DEFAULT_COMPRESS,
    "images": DEFAULT_IMAGES,
    "split": DEFAULT_SPLIT,
}


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file into a dictionary."""

    if not path.is_file():
        raise UserError(f"Config file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise UserError(f"Failed to parse YAML config {path}: {exc}") from exc
    except OSError as exc:
        raise UserError(f"Failed to read config {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise UserError(f"Config {path} must contain a YAML mapping/object at top level.")
    return loaded


def deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """
    Recursively merge dictionaries where overlay values win.
    """

    merged = deepcopy(base)
    for key, value in overlay.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(value, dict)
        ):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def validate_keys(cfg: dict[str, Any], allowed: set[str], ctx: str) -> None:
    """
    Validate dictionary keys and fail fast on unknown entries.
    """

    unknown = sorted(key for key in cfg.keys() if key not in allowed)
    if unknown:
        allowed_list = ", ".join(sorted(allowed))
        unknown_list = ", ".join(unknown)
        raise UserError(
            f"Unknown keys in {ctx}: {unknown_list}. Allowed keys: {allowed_list}."
        )


def validate_config(cfg: dict[str, Any]) -> dict[str, Any]:
    """Check section names, keys and values of a merged config."""

    validate_keys(cfg, set(DEFAULT_CONFIG.keys()), "config")
    for section, defaults in DEFAULT_CONFIG.items():
        values = cfg.get(section, {})
        if not isinstance(values, dict):
            raise UserError(f"config.{section} must be a mapping/object.")
        validate_keys(values, set(defaults.keys()), f"config.{section}")

    compress = cfg.get("compress", {})
    if "preset" in compress and compress["preset"] not in PRESET_LOOKUP:
        raise UserError(
            f"config.compress.preset must be one of: {', '.join(PRESET_LOOKUP)}."
        )

    images = cfg.get("images", {})
    if "page_size" in images and images["page_size"] not in PAGE_PRESETS:
        raise UserError(
            f"config.images.page_size must be one of: {', '.join(PAGE_PRESETS)}."
        )
    if "orientation" in images and images["orientation"] not in ORIENTATIONS:
        raise UserError("config.images.orientation must be portrait or landscape.")
    if "fit" in images and images["fit"] not in {mode.value for mode in FitMode}:
        raise UserError("config.images.fit must be one of: fit, fill, center.")
    margin = images.get("margin", 0)
    if isinstance(margin, bool) or not isinstance(margin, (int, float)) or margin < 0:
        raise UserError("config.images.margin must be a number >= 0.")

    pages_per_file = cfg.get("split", {}).get("pages_per_file")
    if pages_per_file is not None and (
        isinstance(pages_per_file, bool)
        or not isinstance(pages_per_file, int)
        or pages_per_file < 1
    ):
        raise UserError("config.split.pages_per_file must be a positive integer.")
    return cfg


def load_config(path: Path | None) -> dict[str, Any]:
    """Defaults, overlaid with the YAML file when one is given."""

    effective = deep_merge(DEFAULT_CONFIG, {})
    if path is not None:
        loaded = load_yaml(path)
        validate_config(loaded)
        effective = deep_merge(effective, loaded)
    return validate_config(effective)


def dump_default_config_yaml() -> str:
    """Serialize the defaults as YAML."""

    return yaml.safe_dump(DEFAULT_CONFIG, sort_keys=False).rstrip()
