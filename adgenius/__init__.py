"""
AdGenius: turn a single product photo into a finished advertisement.

Modules:
- core: the five-stage generation pipeline
- transform: tiered image transform with fallback
- retry: backoff for transient provider errors and tier attempt chains
- messaging: prompts, structured-output schemas and fallback content
- generator: OpenAI (LangChain) + Replicate content provider
- render: layout, compositing and PNG export
- session: single in-flight generation guard, retry and reset
"""

from .cancellation import CancellationToken
from .config import Settings
from .core import RequestPipeline
from .errors import (
    AdGeniusError,
    GenerationCancelled,
    GenerationFailed,
    PipelineBusyError,
    TierExhaustedError,
)
from .models import (
    AdRecord,
    AdStyle,
    AspectRatio,
    GenerationRequest,
    SourceImage,
    Tier,
    canvas_size,
)
from .render import compose_ad, export_ad
from .retry import RetryPolicy
from .session import AdSession
from .transform import TierFallbackTransform

__all__ = [
    "AdGeniusError",
    "AdRecord",
    "AdSession",
    "AdStyle",
    "AspectRatio",
    "CancellationToken",
    "GenerationCancelled",
    "GenerationFailed",
    "GenerationRequest",
    "PipelineBusyError",
    "RequestPipeline",
    "RetryPolicy",
    "Settings",
    "SourceImage",
    "Tier",
    "TierExhaustedError",
    "TierFallbackTransform",
    "canvas_size",
    "compose_ad",
    "export_ad",
]
