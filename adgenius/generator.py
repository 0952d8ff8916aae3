import logging
from typing import Any, Dict, Optional, Union

import httpx
import replicate
from langchain_core.messages import HumanMessage
from langchain_openai import ChatOpenAI

from .config import Settings
from .models import AspectRatio, SourceImage, Tier

logger = logging.getLogger(__name__)

WEB_SEARCH_TOOL = {"type": "web_search_preview"}


class GenAIProvider:
    """
    Content provider backed by OpenAI chat models (via LangChain) for text and
    Replicate image-editing models for the background transform.

    One instance is built per session and reused for every call.
    """

    def __init__(self, settings: Settings) -> None:
        if not settings.openai_api_key:
            raise RuntimeError(
                "OPENAI_API_KEY is not set. A valid API key is required for text generation."
            )
        if not settings.replicate_api_token:
            raise RuntimeError(
                "REPLICATE_API_TOKEN is not set. A valid API token is required for image generation."
            )

        self.settings = settings
        self._replicate = replicate.Client(api_token=settings.replicate_api_token)
        self._chat_models: Dict[Tier, ChatOpenAI] = {}

    def _chat(self, tier: Tier) -> ChatOpenAI:
        if tier not in self._chat_models:
            self._chat_models[tier] = ChatOpenAI(
                model=self.settings.text_model_for(tier),
                api_key=self.settings.openai_api_key,
                # Retries are handled by RetryPolicy.
                max_retries=0,
            )
        return self._chat_models[tier]

    async def generate_text(
        self,
        prompt: str,
        *,
        schema: Optional[Dict[str, Any]] = None,
        image: Optional[SourceImage] = None,
        tier: Tier = Tier.STANDARD,
        grounded: bool = False,
    ) -> Union[str, Dict[str, Any]]:
        if image is not None:
            content = [
                {"type": "image_url", "image_url": {"url": image.to_data_url()}},
                {"type": "text", "text": prompt},
            ]
        else:
            content = prompt
        messages = [HumanMessage(content=content)]

        llm = self._chat(tier)
        logger.debug("Text request (%s tier, grounded=%s): %s", tier.value, grounded, prompt[:80])

        if schema is not None:
            return await llm.with_structured_output(schema).ainvoke(messages)

        if grounded:
            response = await llm.bind_tools([WEB_SEARCH_TOOL]).ainvoke(messages)
        else:
            response = await llm.ainvoke(messages)
        return _message_text(response.content)

    async def generate_image(
        self,
        source: SourceImage,
        prompt: str,
        aspect_ratio: AspectRatio,
        tier: Tier = Tier.STANDARD,
    ) -> Optional[bytes]:
        model = self.settings.image_model_for(tier)
        input_params: Dict[str, Any] = {
            "prompt": prompt,
            "image_input": [source.to_data_url()],
            "aspect_ratio": AspectRatio(aspect_ratio).value,
            "output_format": "png",
        }
        if Tier(tier) is Tier.HIGH_FIDELITY:
            input_params["resolution"] = "1K"

        logger.info("Transforming image with %s (%s)", model, AspectRatio(aspect_ratio).value)
        output = await self._replicate.async_run(model, input=input_params)
        return await _read_output(output)


def _message_text(content: Any) -> str:
    """Flatten a chat message body, which may be a list of content blocks."""
    if isinstance(content, str):
        return content.strip()

    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts).strip()


async def _read_output(output: Any) -> Optional[bytes]:
    if isinstance(output, (list, tuple)):
        output = output[0] if output else None
    if output is None:
        return None
    if isinstance(output, bytes):
        return output or None
    if hasattr(output, "aread"):
        return await output.aread() or None
    if hasattr(output, "read"):
        return output.read() or None
    if isinstance(output, str):
        async with httpx.AsyncClient(timeout=httpx.Timeout(60.0, connect=10.0)) as client:
            response = await client.get(output)
            response.raise_for_status()
            return response.content or None

    logger.warning("Unexpected image output type from provider: %s", type(output).__name__)
    return None
