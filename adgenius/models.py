import base64
import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple


class Tier(str, Enum):
    """Quality level of a generation call. Higher tiers cost more and are retried less."""

    STANDARD = "standard"
    HIGH_FIDELITY = "high-fidelity"


class AdStyle(str, Enum):
    # Values are the labels sent to the models.
    STUDIO = "Studio Professional"
    OUTDOOR = "Outdoor Lifestyle"
    MINIMAL = "Minimalist Zen"
    CYBERPUNK = "Cyberpunk Neon"
    VINTAGE = "Vintage Retro"
    ELEGANT = "Luxury Elegant"
    ENERGETIC = "Energetic Pop"


class AspectRatio(str, Enum):
    SQUARE = "1:1"
    STORY = "9:16"
    LANDSCAPE = "16:9"


CANVAS_SIZES: Dict[AspectRatio, Tuple[int, int]] = {
    AspectRatio.SQUARE: (1080, 1080),
    AspectRatio.STORY: (1080, 1920),
    AspectRatio.LANDSCAPE: (1080, 608),
}


def canvas_size(aspect_ratio: AspectRatio) -> Tuple[int, int]:
    """Export canvas for a ratio. Never derived from the image itself."""
    return CANVAS_SIZES[AspectRatio(aspect_ratio)]


class PipelineState(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    RESEARCHING = "researching"
    STRATEGIZING = "strategizing"
    WRITING = "writing"
    TRANSFORMING = "transforming"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class SourceImage:
    data: bytes
    mime_type: str = "image/png"

    @classmethod
    def from_path(cls, path: Path) -> "SourceImage":
        mime_type, _ = mimetypes.guess_type(str(path))
        return cls(data=Path(path).read_bytes(), mime_type=mime_type or "image/png")

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


@dataclass
class ProductProfile:
    name: str
    # Filled by research (or the name itself); never None.
    description: str = ""


@dataclass(frozen=True)
class Strategy:
    image_prompt: str
    copy_angle: str


@dataclass(frozen=True)
class Copy:
    headline: str
    subheadline: str
    cta: str


@dataclass(frozen=True)
class GenerationRequest:
    style: AdStyle
    aspect_ratio: AspectRatio
    custom_instruction: Optional[str] = None
    quality_tier: Tier = Tier.STANDARD
    complex_strategy: bool = True


@dataclass
class AdPlan:
    """Everything computed before the image transform."""

    profile: ProductProfile
    strategy: Strategy
    copy: Copy
    degraded_stages: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class AdRecord:
    source_image: SourceImage
    rendered_image: bytes
    headline: str
    subheadline: str
    cta: str
    style: AdStyle
    aspect_ratio: AspectRatio
