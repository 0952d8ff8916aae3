from typing import Any, Dict, Optional, Protocol, Union

from .models import AspectRatio, SourceImage, Tier


class ContentProvider(Protocol):
    """
    The two AI capabilities the pipeline consumes.

    Implementations must be safe to call sequentially from one event loop;
    the pipeline never calls them concurrently.
    """

    async def generate_text(
        self,
        prompt: str,
        *,
        schema: Optional[Dict[str, Any]] = None,
        image: Optional[SourceImage] = None,
        tier: Tier = Tier.STANDARD,
        grounded: bool = False,
    ) -> Union[str, Dict[str, Any]]:
        """
        Plain text when `schema` is None, otherwise a dict shaped by the
        JSON schema. `image` is attached to the prompt; `grounded` enables
        web search.
        """
        ...

    async def generate_image(
        self,
        source: SourceImage,
        prompt: str,
        aspect_ratio: AspectRatio,
        tier: Tier = Tier.STANDARD,
    ) -> Optional[bytes]:
        """Transformed image bytes, or None when the provider declines."""
        ...
