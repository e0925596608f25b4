"""Conversion between absolute authoring pixels and viewport expressions.

Generated scenes must scale with the device canvas, so every position and size
is written as a multiple of a viewport dimension. Horizontal and vertical
quantities both use the viewport width, keeping a uniform scale; radii use the
smaller of the two dimensions.

Encoding is exact for ``0`` and for values equal to (the negation of) the
reference dimension. Other values are written with a factor rounded to four
decimals, so decoding at the same viewport lands within ``1e-4`` of the
reference dimension of the original value. The tolerance is absolute, so small
values lose relative precision: 1px on a 360px wide viewport decodes to
about 1.008px.
"""

from __future__ import annotations

import math
import re
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from .viewport import Viewport

FACTOR_DIGITS = 4
TOLERANCE = 10 ** -FACTOR_DIGITS

DEFAULT_ANCHOR = "center"

ANCHOR_POINTS: Mapping[str, tuple[float, float]] = MappingProxyType(
    {
        "topleft": (0.0, 0.0),
        "top": (0.5, 0.0),
        "topright": (1.0, 0.0),
        "left": (0.0, 0.5),
        "center": (0.5, 0.5),
        "right": (1.0, 0.5),
        "botleft": (0.0, 1.0),
        "bot": (0.5, 1.0),
        "botright": (1.0, 1.0),
    }
)


class Reference(str, Enum):
    """Viewport quantity a relative expression is measured against."""

    WIDTH = "viewport.width"
    HEIGHT = "viewport.height"
    MIN = "Math.min(viewport.width, viewport.height)"

    def resolve(self, viewport: Viewport) -> float:
        if self is Reference.WIDTH:
            return float(viewport.width)
        if self is Reference.HEIGHT:
            return float(viewport.height)
        return float(viewport.min_dimension)


_EXPRESSION_PATTERN = re.compile(
    r"^(?P<sign>-)?(?P<ref>viewport\.width|viewport\.height|"
    r"Math\.min\(viewport\.width, ?viewport\.height\))"
    r"(?: \* (?P<factor>-?\d+(?:\.\d+)?))?$"
)
_LITERAL_PATTERN = re.compile(r"^-?\d+(?:\.\d+)?$")


def format_number(value: float) -> str:
    """Render ``value`` as a short source literal (``2``, ``0.5``, ``-1.25``)."""

    rounded = round(float(value), FACTOR_DIGITS)
    if rounded == 0:
        return "0"
    if rounded.is_integer():
        return str(int(rounded))
    return f"{rounded:.{FACTOR_DIGITS}f}".rstrip("0").rstrip(".")


def encode(value: float, viewport: Viewport, reference: Reference = Reference.WIDTH) -> str:
    """Return the viewport-relative expression for a raw pixel ``value``."""

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"value must be a number, got {type(value)!r}")
    if not math.isfinite(value):
        raise ValueError("value must be finite")

    dimension = reference.resolve(viewport)
    if value == 0:
        return "0"
    if value == dimension:
        return reference.value
    if value == -dimension:
        return f"-{reference.value}"
    return f"{reference.value} * {format_number(value / dimension)}"


def decode(expression: str, viewport: Viewport) -> float:
    """Evaluate an expression produced by :func:`encode` at ``viewport``.

    Raises:
        ValueError: If ``expression`` is not in one of the encoded forms.
    """

    text = expression.strip()
    if _LITERAL_PATTERN.match(text):
        return float(text)

    match = _EXPRESSION_PATTERN.match(text)
    if match is None:
        raise ValueError(f"Not a viewport expression: {expression!r}")

    ref_text = match.group("ref")
    if ref_text == Reference.WIDTH.value:
        reference = Reference.WIDTH
    elif ref_text == Reference.HEIGHT.value:
        reference = Reference.HEIGHT
    else:
        reference = Reference.MIN

    value = reference.resolve(viewport)
    if match.group("factor") is not None:
        value *= float(match.group("factor"))
    if match.group("sign"):
        value = -value
    return value


def encode_point(x: float, y: float, viewport: Viewport) -> tuple[str, str]:
    return encode(x, viewport), encode(y, viewport)


def encode_size(width: float, height: float, viewport: Viewport) -> tuple[str, str]:
    return encode(width, viewport), encode(height, viewport)


def encode_radius(radius: float, viewport: Viewport) -> str:
    return encode(radius, viewport, Reference.MIN)


def anchor_fraction(anchor: str) -> tuple[float, float]:
    try:
        return ANCHOR_POINTS[anchor]
    except KeyError as exc:
        raise ValueError(f"Unknown anchor '{anchor}'") from exc


def anchor_point(anchor: str, width: float, height: float) -> tuple[float, float]:
    """Return the anchor's offset from the top-left of a ``width``x``height`` box."""

    fx, fy = anchor_fraction(anchor)
    return fx * width, fy * height


def top_left(x: float, y: float, anchor: str, width: float, height: float) -> tuple[float, float]:
    """Return the top-left corner of a box whose ``anchor`` sits at ``(x, y)``."""

    dx, dy = anchor_point(anchor, width, height)
    return x - dx, y - dy


def origin_relative_to_anchor(
    origin_x: float, origin_y: float, anchor: str, width: float, height: float
) -> tuple[float, float]:
    """Express a sprite origin (pixels from its top-left) relative to the anchor."""

    ax, ay = anchor_point(anchor, width, height)
    return origin_x - ax, origin_y - ay


__all__ = [
    "ANCHOR_POINTS",
    "DEFAULT_ANCHOR",
    "FACTOR_DIGITS",
    "Reference",
    "TOLERANCE",
    "anchor_fraction",
    "anchor_point",
    "decode",
    "encode",
    "encode_point",
    "encode_radius",
    "encode_size",
    "format_number",
    "origin_relative_to_anchor",
    "top_left",
]
