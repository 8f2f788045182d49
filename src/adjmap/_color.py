"""Colors, and how they are packed into the single numbers expressions use.

Every expression evaluates to numbers, so a color travels through the
evaluator as one packed number: ``0xRRGGBBAA`` with alpha stored as a byte.
The packed value is always non-negative and below 2**32, so it can never
collide with the null sentinel.
"""

import math
import re
from dataclasses import dataclass

_CHANNEL_MAX = 255

_NAMED_COLORS: dict[str, tuple[int, int, int]] = {
    "black": (0, 0, 0),
    "white": (255, 255, 255),
    "red": (255, 0, 0),
    "green": (0, 128, 0),
    "lime": (0, 255, 0),
    "blue": (0, 0, 255),
    "yellow": (255, 255, 0),
    "cyan": (0, 255, 255),
    "aqua": (0, 255, 255),
    "magenta": (255, 0, 255),
    "fuchsia": (255, 0, 255),
    "gray": (128, 128, 128),
    "grey": (128, 128, 128),
    "silver": (192, 192, 192),
    "lightgray": (211, 211, 211),
    "darkgray": (169, 169, 169),
    "maroon": (128, 0, 0),
    "olive": (128, 128, 0),
    "navy": (0, 0, 128),
    "purple": (128, 0, 128),
    "teal": (0, 128, 128),
    "orange": (255, 165, 0),
    "gold": (255, 215, 0),
    "pink": (255, 192, 203),
    "brown": (165, 42, 42),
    "indigo": (75, 0, 130),
    "violet": (238, 130, 238),
    "coral": (255, 127, 80),
    "salmon": (250, 128, 114),
    "tomato": (255, 99, 71),
    "crimson": (220, 20, 60),
    "khaki": (240, 230, 140),
    "turquoise": (64, 224, 208),
    "skyblue": (135, 206, 235),
    "steelblue": (70, 130, 180),
    "darkgreen": (0, 100, 0),
    "darkblue": (0, 0, 139),
    "darkred": (139, 0, 0),
    "orchid": (218, 112, 214),
    "plum": (221, 160, 221),
    "beige": (245, 245, 220),
    "ivory": (255, 255, 240),
}

_FUNCTIONAL_RE = re.compile(r"^rgba?\(\s*([^)]*)\)$")


@dataclass(frozen=True, slots=True)
class Color:
    """An RGBA color with 0-255 channels and 0-1 alpha."""

    r: int
    g: int
    b: int
    a: float = 1.0

    @property
    def rgb(self) -> tuple[int, int, int]:
        return (self.r, self.g, self.b)

    @property
    def rgba(self) -> tuple[int, int, int, float]:
        return (self.r, self.g, self.b, self.a)

    @property
    def hex(self) -> str:
        return f"#{self.r:02x}{self.g:02x}{self.b:02x}"

    @property
    def rgba_str(self) -> str:
        return f"rgba({self.r},{self.g},{self.b},{round(self.a, 3)})"

    def __str__(self) -> str:
        return self.hex if self.a >= 1.0 else self.rgba_str


def _clamp_channel(value: float) -> int:
    return max(0, min(_CHANNEL_MAX, round(value)))


def _clamp_alpha(value: float) -> float:
    return max(0.0, min(1.0, value))


def make_color(r: float, g: float, b: float, a: float = 1.0) -> Color:
    """Build a color, clamping every channel into its legal range."""
    return Color(_clamp_channel(r), _clamp_channel(g), _clamp_channel(b), _clamp_alpha(a))


def _parse_hex(text: str) -> Color:
    digits = text[1:]
    if len(digits) in (3, 4):
        digits = "".join(ch * 2 for ch in digits)
    if len(digits) not in (6, 8):
        msg = f"Invalid hex color: {text!r}"
        raise ValueError(msg)
    try:
        channels = [int(digits[i : i + 2], 16) for i in range(0, len(digits), 2)]
    except ValueError:
        msg = f"Invalid hex color: {text!r}"
        raise ValueError(msg) from None
    alpha = channels[3] / _CHANNEL_MAX if len(channels) == 4 else 1.0  # noqa: PLR2004
    return Color(channels[0], channels[1], channels[2], alpha)


def _parse_functional(text: str, body: str) -> Color:
    parts = [part.strip() for part in body.split(",")]
    if len(parts) not in (3, 4):
        msg = f"Invalid color: {text!r}"
        raise ValueError(msg)
    try:
        numbers = [float(part) for part in parts]
    except ValueError:
        msg = f"Invalid color: {text!r}"
        raise ValueError(msg) from None
    return make_color(*numbers)


def parse_color(text: str) -> Color:
    """Parse a CSS color string.

    Supports named colors, ``#rgb``/``#rgba``/``#rrggbb``/``#rrggbbaa`` and
    ``rgb(r, g, b)``/``rgba(r, g, b, a)``.

    Raises:
        ValueError: If the string is not a color this parser understands.

    """
    cleaned = text.strip().lower()
    if cleaned.startswith("#"):
        return _parse_hex(cleaned)
    if match := _FUNCTIONAL_RE.match(cleaned):
        return _parse_functional(text, match.group(1))
    if cleaned == "transparent":
        return Color(0, 0, 0, 0.0)
    if cleaned in _NAMED_COLORS:
        return Color(*_NAMED_COLORS[cleaned])
    msg = f"Unknown color: {text!r}"
    raise ValueError(msg)


def pack_color(color: Color) -> float:
    alpha = round(color.a * _CHANNEL_MAX)
    return float((color.r << 24) | (color.g << 16) | (color.b << 8) | alpha)


def unpack_color(value: float) -> Color:
    """Invert `pack_color`. Out of range numbers are clamped first."""
    packed = 0 if math.isnan(value) else int(max(0, min(0xFFFFFFFF, value)))
    return Color(
        (packed >> 24) & 0xFF,
        (packed >> 16) & 0xFF,
        (packed >> 8) & 0xFF,
        (packed & 0xFF) / _CHANNEL_MAX,
    )


def mix_colors(colors: list[Color]) -> Color:
    """Average colors channel by channel."""
    count = len(colors)
    return make_color(
        sum(c.r for c in colors) / count,
        sum(c.g for c in colors) / count,
        sum(c.b for c in colors) / count,
        sum(c.a for c in colors) / count,
    )


def interpolate_colors(start: Color, end: Color, progress: float) -> Color:
    """Linearly interpolate from `start` (progress 0) to `end` (progress 1)."""
    t = max(0.0, min(1.0, progress))
    return make_color(
        start.r + (end.r - start.r) * t,
        start.g + (end.g - start.g) * t,
        start.b + (end.b - start.b) * t,
        start.a + (end.a - start.a) * t,
    )


BLACK = Color(0, 0, 0)
