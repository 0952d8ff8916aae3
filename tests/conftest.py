from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import pytest
from PIL import Image

from adgenius.models import AspectRatio, SourceImage, Tier
from adgenius.retry import RetryPolicy


class RateLimited(Exception):
    status_code = 429


@dataclass
class TextCall:
    prompt: str
    schema: Optional[Dict[str, Any]]
    image: Optional[SourceImage]
    tier: Tier
    grounded: bool

    @property
    def stage(self) -> str:
        if self.image is not None:
            return "analyze"
        if self.grounded:
            return "research"
        if self.schema and self.schema["title"] == "AdStrategy":
            return "strategize"
        return "write"


@dataclass
class ImageCall:
    source: SourceImage
    prompt: str
    aspect_ratio: AspectRatio
    tier: Tier


def _default_text(call: TextCall) -> Any:
    return {
        "analyze": "Trail Runner Shoe",
        "research": "Lightweight, waterproof, grippy outsole.",
        "strategize": {"imagePrompt": "Shoe on a mossy rock at dawn", "copyAngle": "Go further"},
        "write": {"headline": "Run Wild", "subheadline": "Built for every trail.", "cta": "Buy now"},
    }[call.stage]


class FakeProvider:
    """
    Scripted content provider. Handlers receive the recorded call and return
    a value; returning an exception instance raises it instead.
    """

    def __init__(
        self,
        text: Optional[Callable[[TextCall], Any]] = None,
        image: Optional[Callable[[ImageCall], Any]] = None,
    ) -> None:
        self.text_handler = text or _default_text
        self.image_handler = image or (lambda call: png_bytes())
        self.text_calls: List[TextCall] = []
        self.image_calls: List[ImageCall] = []

    def calls_for(self, stage: str) -> List[TextCall]:
        return [call for call in self.text_calls if call.stage == stage]

    async def generate_text(self, prompt, *, schema=None, image=None, tier=Tier.STANDARD, grounded=False):
        call = TextCall(prompt, schema, image, tier, grounded)
        self.text_calls.append(call)
        result = self.text_handler(call)
        if isinstance(result, BaseException):
            raise result
        return result

    async def generate_image(self, source, prompt, aspect_ratio, tier=Tier.STANDARD):
        call = ImageCall(source, prompt, aspect_ratio, tier)
        self.image_calls.append(call)
        result = self.image_handler(call)
        if isinstance(result, BaseException):
            raise result
        return result


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def png_bytes(size=(320, 240), color=(30, 60, 120)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture()
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def retry_policy(sleep: RecordingSleep) -> RetryPolicy:
    return RetryPolicy(sleep=sleep)


@pytest.fixture()
def source() -> SourceImage:
    return SourceImage(data=png_bytes(), mime_type="image/png")
