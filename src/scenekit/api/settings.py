"""Configuration helpers for deploying the FastAPI editing service."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from ..viewport import DEFAULT_PRESET, PRESETS


def _normalise_path(value: str | None) -> Path | None:
    if value is None:
        return None

    trimmed = value.strip()
    if not trimmed:
        return None

    return Path(trimmed).expanduser()


def _normalise_string(value: str | None, *, default: str) -> str:
    if value is None:
        return default

    trimmed = value.strip()
    return trimmed or default


def normalise_log_level(value: str) -> str:
    """Return the canonical upper-case level name for ``value``.

    Raises:
        ValueError: If ``value`` is not a standard logging level name.
    """

    level = value.strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"Unknown log level '{value}'.")
    return level


def validate_preset(value: str) -> str:
    if value not in PRESETS:
        known = ", ".join(sorted(PRESETS))
        raise ValueError(f"Unknown viewport preset '{value}'. Expected one of: {known}.")
    return value


@dataclass(frozen=True)
class EditorSettings:
    """Deployment settings for the editing service and the CLI.

    Values are read from environment variables so the service can be
    configured without modifying application code. Paths are expanded to
    support ``~`` prefixes while empty strings are treated as if the variable
    was unset. Without a project root, scenes are kept in memory only.
    """

    project_root: Path | None = None
    scene_dir: str = "scenes-data"
    output_dir: str = "scenes"
    default_preset: str = DEFAULT_PRESET
    log_level: str = "INFO"

    @property
    def scene_store_path(self) -> Path | None:
        if self.project_root is None:
            return None
        return self.project_root / self.scene_dir

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "EditorSettings":
        """Return settings populated from ``environ``.

        Args:
            environ: Optional mapping of environment variables. When omitted,
                :data:`os.environ` is used.

        Raises:
            ValueError: If the preset or log level names are not recognised.
        """

        source = environ if environ is not None else os.environ

        project_root = _normalise_path(source.get("SCENEKIT_PROJECT_ROOT"))
        scene_dir = _normalise_string(source.get("SCENEKIT_SCENE_DIR"), default="scenes-data")
        output_dir = _normalise_string(source.get("SCENEKIT_OUTPUT_DIR"), default="scenes")
        default_preset = validate_preset(
            _normalise_string(source.get("SCENEKIT_DEFAULT_PRESET"), default=DEFAULT_PRESET)
        )
        log_level = normalise_log_level(
            _normalise_string(source.get("SCENEKIT_LOG_LEVEL"), default="INFO")
        )

        return cls(
            project_root=project_root,
            scene_dir=scene_dir,
            output_dir=output_dir,
            default_preset=default_preset,
            log_level=log_level,
        )


__all__ = ["EditorSettings", "normalise_log_level", "validate_preset"]
