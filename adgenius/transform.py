import logging
from typing import List, Optional

from .cancellation import CancellationToken
from .errors import GenerationCancelled, NoImageGenerated, TierExhaustedError
from .messaging import build_transform_prompt
from .models import AdStyle, AspectRatio, SourceImage, Tier
from .provider import ContentProvider
from .retry import Attempt, RetryPolicy, run_attempt_chain

logger = logging.getLogger(__name__)

# High fidelity is retried once before falling back; standard retries more.
HIGH_FIDELITY_ATTEMPT = Attempt(Tier.HIGH_FIDELITY, max_retries=1, initial_delay=2.0)
STANDARD_ATTEMPT = Attempt(Tier.STANDARD, max_retries=3, initial_delay=2.0)


class TierFallbackTransform:
    """
    Image-to-image transform that tries the high-fidelity tier first and
    silently falls back to the standard tier.

    Callers only see the resulting image; which tier produced it is logged
    but not reported.
    """

    def __init__(
        self,
        provider: ContentProvider,
        retry_policy: Optional[RetryPolicy] = None,
        high_fidelity: Attempt = HIGH_FIDELITY_ATTEMPT,
        standard: Attempt = STANDARD_ATTEMPT,
    ) -> None:
        self.provider = provider
        self.retry_policy = retry_policy or RetryPolicy()
        self.high_fidelity = high_fidelity
        self.standard = standard

    def attempts_for(self, tier: Tier) -> List[Attempt]:
        if Tier(tier) is Tier.HIGH_FIDELITY:
            return [self.high_fidelity, self.standard]
        return [self.standard]

    async def transform(
        self,
        source: SourceImage,
        style: AdStyle,
        aspect_ratio: AspectRatio,
        instruction: Optional[str],
        tier: Tier = Tier.STANDARD,
        token: Optional[CancellationToken] = None,
    ) -> bytes:
        token = token or CancellationToken()

        async def generate(attempt_tier: Tier) -> bytes:
            prompt = build_transform_prompt(style, instruction, attempt_tier)
            image = await token.run(
                self.provider.generate_image(source, prompt, aspect_ratio, attempt_tier)
            )
            if not image:
                raise NoImageGenerated(attempt_tier.value)
            logger.info("Image transformed with the %s tier", attempt_tier.value)
            return image

        try:
            return await run_attempt_chain(
                self.attempts_for(tier), generate, self.retry_policy, token
            )
        except GenerationCancelled:
            raise
        except Exception as exc:
            logger.error("Image generation failed on every tier: %s", exc)
            raise TierExhaustedError(f"Image transform failed: {exc}", stage="transform") from exc
