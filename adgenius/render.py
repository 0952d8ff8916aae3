import io
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union

from PIL import Image, ImageDraw, ImageFont, ImageOps

from .models import AdRecord, canvas_size

logger = logging.getLogger(__name__)

MARGIN = 60

HEADLINE_SIZE = 64
HEADLINE_LINE_HEIGHT = 75
# Baseline of the last headline line, measured up from the bottom edge.
HEADLINE_BOTTOM_OFFSET = 280
# Highest baseline a headline line may take.
HEADLINE_TOP = MARGIN + HEADLINE_SIZE
ELLIPSIS = "..."

SUBHEADLINE_SIZE = 36
SUBHEADLINE_OFFSET = 60

CTA_SIZE = 28
CTA_OFFSET = 120
CTA_PADDING_X = 40
CTA_PADDING_Y = 20
CTA_RADIUS = 40
CTA_TEXT_BASELINE = CTA_PADDING_Y + 24

HEADLINE_COLOR = "#FFFFFF"
SUBHEADLINE_COLOR = "#E5E7EB"
CTA_FILL = "#FFFFFF"
CTA_TEXT_COLOR = "#000000"

# Gradient: transparent at GRADIENT_TOP * height, darkening towards the bottom.
GRADIENT_TOP = 0.4
GRADIENT_STOPS = ((0.0, 0.0), (0.5, 0.3), (1.0, 0.85))

Point = Tuple[int, int]


@dataclass(frozen=True)
class FontSet:
    headline: ImageFont.FreeTypeFont
    subheadline: ImageFont.FreeTypeFont
    cta: ImageFont.FreeTypeFont

    @classmethod
    def load(cls, font_path: Optional[str] = None) -> "FontSet":
        return cls(
            headline=_load_font(font_path, size=HEADLINE_SIZE, bold=True),
            subheadline=_load_font(font_path, size=SUBHEADLINE_SIZE, bold=False),
            cta=_load_font(font_path, size=CTA_SIZE, bold=True),
        )


@dataclass(frozen=True)
class AdLayout:
    width: int
    height: int
    headline_lines: Tuple[str, ...]
    headline_origins: Tuple[Point, ...]
    subheadline: str
    subheadline_origin: Point
    cta_text: str
    cta_box: Tuple[int, int, int, int]
    cta_radius: int
    cta_text_origin: Point


@dataclass(frozen=True)
class ExportedAd:
    data: bytes
    filename: str
    mime_type: str = "image/png"


def wrap_text(text: str, font, max_width: float) -> List[str]:
    """
    Greedy word wrap. The first word of a line is always accepted, and the
    final line is always committed, so the result is never empty.
    """
    lines: List[str] = []
    current = ""
    for word in text.split():
        test = f"{current} {word}" if current else word
        if font.getlength(test) <= max_width or not current:
            current = test
        else:
            lines.append(current)
            current = word
    lines.append(current)
    return lines


def _ellipsize(line: str, font, max_width: float) -> str:
    words = line.split()
    while len(words) > 1 and font.getlength(" ".join(words) + ELLIPSIS) > max_width:
        words.pop()
    return " ".join(words) + ELLIPSIS


def layout_ad(
    headline: str,
    subheadline: str,
    cta: str,
    width: int,
    height: int,
    fonts: FontSet,
) -> AdLayout:
    """
    Compute every text position on the canvas. Headlines grow upward from a
    fixed baseline so the subheadline and button stay put. Lines that would
    rise past the top margin are dropped and the last kept line is ellipsized.
    """
    max_width = width - 2 * MARGIN
    lines = wrap_text(headline, fonts.headline, max_width)

    last_baseline = height - HEADLINE_BOTTOM_OFFSET
    max_lines = max(1, (last_baseline - HEADLINE_TOP) // HEADLINE_LINE_HEIGHT + 1)
    if len(lines) > max_lines:
        lines = lines[:max_lines]
        lines[-1] = _ellipsize(lines[-1], fonts.headline, max_width)
    first_baseline = last_baseline - (len(lines) - 1) * HEADLINE_LINE_HEIGHT
    origins = tuple(
        (MARGIN, first_baseline + i * HEADLINE_LINE_HEIGHT) for i in range(len(lines))
    )

    cta_text = cta.upper()
    text_width = fonts.cta.getlength(cta_text)
    button_w = int(round(text_width + 2 * CTA_PADDING_X))
    button_h = CTA_SIZE + 2 * CTA_PADDING_Y
    button_y = last_baseline + CTA_OFFSET
    radius = min(CTA_RADIUS, button_w // 2, button_h // 2)

    return AdLayout(
        width=width,
        height=height,
        headline_lines=tuple(lines),
        headline_origins=origins,
        subheadline=subheadline,
        subheadline_origin=(MARGIN, last_baseline + SUBHEADLINE_OFFSET),
        cta_text=cta_text,
        cta_box=(MARGIN, button_y, MARGIN + button_w, button_y + button_h),
        cta_radius=radius,
        cta_text_origin=(MARGIN + CTA_PADDING_X, button_y + CTA_TEXT_BASELINE),
    )


def compose_ad(
    background: Union[bytes, Image.Image],
    headline: str,
    subheadline: str,
    cta: str,
    width: int,
    height: int,
    fonts: Optional[FontSet] = None,
) -> bytes:
    """
    Render the finished ad: cover-fit background, legibility gradient,
    wrapped headline, subheadline and CTA button. Returns PNG bytes.
    """
    fonts = fonts or FontSet.load()
    layout = layout_ad(headline, subheadline, cta, width, height, fonts)

    if isinstance(background, bytes):
        background = Image.open(io.BytesIO(background))
    img = ImageOps.fit(background.convert("RGB"), (width, height), Image.LANCZOS)
    img = Image.alpha_composite(img.convert("RGBA"), _gradient_overlay(width, height))

    draw = ImageDraw.Draw(img)
    for line, origin in zip(layout.headline_lines, layout.headline_origins):
        draw.text(origin, line, font=fonts.headline, fill=HEADLINE_COLOR, anchor="ls")

    draw.text(
        layout.subheadline_origin,
        layout.subheadline,
        font=fonts.subheadline,
        fill=SUBHEADLINE_COLOR,
        anchor="ls",
    )

    draw.rounded_rectangle(layout.cta_box, radius=layout.cta_radius, fill=CTA_FILL)
    draw.text(
        layout.cta_text_origin,
        layout.cta_text,
        font=fonts.cta,
        fill=CTA_TEXT_COLOR,
        anchor="ls",
    )

    buffer = io.BytesIO()
    img.convert("RGB").save(buffer, format="PNG")
    return buffer.getvalue()


def export_ad(
    record: AdRecord,
    fonts: Optional[FontSet] = None,
    timestamp: Optional[int] = None,
) -> ExportedAd:
    width, height = canvas_size(record.aspect_ratio)
    data = compose_ad(
        record.rendered_image,
        record.headline,
        record.subheadline,
        record.cta,
        width,
        height,
        fonts=fonts,
    )
    if timestamp is None:
        timestamp = int(time.time() * 1000)
    return ExportedAd(data=data, filename=f"adgenius-{timestamp}.png")


def _gradient_overlay(width: int, height: int) -> Image.Image:
    overlay = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)

    top = int(height * GRADIENT_TOP)
    span = max(height - 1 - top, 1)
    for y in range(top, height):
        alpha = _gradient_alpha((y - top) / span)
        draw.line([(0, y), (width, y)], fill=(0, 0, 0, int(round(255 * alpha))))
    return overlay


def _gradient_alpha(position: float) -> float:
    for (start, start_alpha), (end, end_alpha) in zip(GRADIENT_STOPS, GRADIENT_STOPS[1:]):
        if position <= end:
            t = (position - start) / (end - start)
            return start_alpha + t * (end_alpha - start_alpha)
    return GRADIENT_STOPS[-1][1]


def _load_font(font_path: Optional[str], size: int, bold: bool) -> ImageFont.FreeTypeFont:
    """
    Load a TrueType font with fallbacks to avoid pixelated bitmap fonts.
    Prioritizes fonts from the fonts/ folder, then custom font_path, then system fonts.
    """
    project_root = Path(__file__).parent.parent
    fonts_dir = project_root / "fonts"

    candidates: List[str] = []
    if fonts_dir.exists():
        preferred = "Inter-Bold" if bold else "Inter-Medium"
        candidates += [str(p) for p in sorted(fonts_dir.glob(f"{preferred}.*"))]
        candidates += [str(p) for p in sorted(fonts_dir.glob("*.ttf"))]
        candidates += [str(p) for p in sorted(fonts_dir.glob("*.otf"))]

    if font_path:
        candidates.append(font_path)

    if bold:
        candidates += [
            "/System/Library/Fonts/Supplemental/Arial Bold.ttf",
            "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
            "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
            "C:/Windows/Fonts/arialbd.ttf",
        ]
    candidates += [
        "/System/Library/Fonts/Helvetica.ttc",
        "/System/Library/Fonts/Supplemental/Arial.ttf",
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
        "C:/Windows/Fonts/arial.ttf",
    ]

    for candidate in candidates:
        try:
            return ImageFont.truetype(candidate, size=size)
        except OSError:
            continue

    logger.debug("No TrueType font found, using Pillow's default font at %dpx", size)
    return ImageFont.load_default(size=size)
