"""Viewport configuration shared by a scene and its generated source."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

CUSTOM_PRESET = "custom"
DEFAULT_PRESET = "mobile-portrait"


@dataclass(frozen=True)
class ViewportPreset:
    """A named canvas size selectable by the author."""

    name: str
    width: int
    height: int
    label: str


_PRESET_TABLE = (
    ViewportPreset("mobile-portrait", 360, 640, "Mobile (portrait)"),
    ViewportPreset("mobile-landscape", 640, 360, "Mobile (landscape)"),
    ViewportPreset("iphone-14", 390, 844, "iPhone 14"),
    ViewportPreset("ipad", 768, 1024, "iPad"),
    ViewportPreset("classic", 800, 600, "Classic 4:3"),
    ViewportPreset("desktop-hd", 1280, 720, "Desktop HD"),
    ViewportPreset("desktop-fhd", 1920, 1080, "Desktop Full HD"),
)

PRESETS: Mapping[str, ViewportPreset] = MappingProxyType(
    {preset.name: preset for preset in _PRESET_TABLE}
)


@dataclass(frozen=True)
class Viewport:
    """Logical canvas used as the denominator for relative coordinates."""

    width: float
    height: float
    preset: str = CUSTOM_PRESET

    def __post_init__(self) -> None:
        for field_name in ("width", "height"):
            value = getattr(self, field_name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise TypeError(f"viewport {field_name} must be a number")
            if value <= 0:
                raise ValueError(f"viewport {field_name} must be greater than zero")

    @classmethod
    def from_preset(cls, name: str) -> "Viewport":
        """Return the viewport described by preset ``name``.

        Raises:
            KeyError: If ``name`` is not a known preset.
        """

        try:
            preset = PRESETS[name]
        except KeyError as exc:
            raise KeyError(f"Unknown viewport preset '{name}'") from exc
        return cls(width=preset.width, height=preset.height, preset=preset.name)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> "Viewport":
        """Build a viewport from its persisted ``{preset, width, height}`` form.

        A known preset name wins over explicit sizes so that documents saved
        against an older preset table pick up the current dimensions.
        """

        if not payload:
            return cls.from_preset(DEFAULT_PRESET)

        preset_name = payload.get("preset") or payload.get("presetName")
        if isinstance(preset_name, str) and preset_name in PRESETS:
            return cls.from_preset(preset_name)

        width = payload.get("width")
        height = payload.get("height")
        if width is None or height is None:
            return cls.from_preset(DEFAULT_PRESET)
        return cls(width=width, height=height, preset=CUSTOM_PRESET)

    def to_payload(self) -> dict[str, Any]:
        return {"preset": self.preset, "width": self.width, "height": self.height}

    @property
    def min_dimension(self) -> float:
        return min(self.width, self.height)


def list_presets() -> tuple[ViewportPreset, ...]:
    """Return the preset table in display order."""

    return _PRESET_TABLE


__all__ = [
    "CUSTOM_PRESET",
    "DEFAULT_PRESET",
    "PRESETS",
    "Viewport",
    "ViewportPreset",
    "list_presets",
]
