import logging
from typing import Callable, List, Optional

from .cancellation import CancellationToken
from .errors import GenerationCancelled, GenerationFailed
from .messaging import (
    ANALYZE_PROMPT,
    COPY_SCHEMA,
    EMPTY_ANALYSIS_NAME,
    FALLBACK_COPY,
    FALLBACK_PRODUCT_NAME,
    STRATEGY_SCHEMA,
    build_copy_prompt,
    build_research_prompt,
    build_strategy_prompt,
    fallback_strategy,
    parse_copy,
    parse_strategy,
)
from .models import (
    AdPlan,
    AdRecord,
    AdStyle,
    Copy,
    GenerationRequest,
    PipelineState,
    ProductProfile,
    SourceImage,
    Strategy,
    Tier,
)
from .provider import ContentProvider
from .retry import Attempt, RetryPolicy, run_attempt_chain
from .transform import TierFallbackTransform

logger = logging.getLogger(__name__)

# (max_retries, initial_delay) per stage.
ANALYZE_RETRY = (2, 1.0)
RESEARCH_RETRY = (1, 1.0)
COPY_RETRY = (3, 2.0)

HIGH_FIDELITY_STRATEGY = Attempt(Tier.HIGH_FIDELITY, max_retries=1, initial_delay=1.0)
STANDARD_STRATEGY = Attempt(Tier.STANDARD, max_retries=2, initial_delay=1.0)


class RequestPipeline:
    """
    Orchestrates one ad generation:
    - analyze the product photo for a product name
    - research selling points for that name
    - build a creative strategy (image prompt + copy angle)
    - write headline / subheadline / CTA
    - transform the photo into the ad background

    The first four stages degrade to defaults when they fail. Only the
    transform can fail the whole generation.
    """

    def __init__(
        self,
        provider: ContentProvider,
        retry_policy: Optional[RetryPolicy] = None,
        transform: Optional[TierFallbackTransform] = None,
        on_state_change: Optional[Callable[[PipelineState], None]] = None,
    ) -> None:
        self.provider = provider
        self.retry_policy = retry_policy or RetryPolicy()
        self.transform = transform or TierFallbackTransform(provider, self.retry_policy)
        self.on_state_change = on_state_change
        self.state = PipelineState.IDLE
        self._owner: Optional[CancellationToken] = None

    async def run(
        self,
        source: SourceImage,
        request: GenerationRequest,
        token: Optional[CancellationToken] = None,
    ) -> AdRecord:
        token = token or CancellationToken()
        plan = await self.prepare(source, request, token)
        return await self.render(source, request, plan, token)

    async def prepare(
        self,
        source: SourceImage,
        request: GenerationRequest,
        token: Optional[CancellationToken] = None,
    ) -> AdPlan:
        """Run analyze, research, strategize and write. Never fails except on cancel."""
        token = token or CancellationToken()
        degraded: List[str] = []
        self._claim(token)

        try:
            self._enter(PipelineState.ANALYZING, token)
            name = await self._analyze(source, token, degraded)

            self._enter(PipelineState.RESEARCHING, token)
            profile = await self._research(name, token, degraded)

            self._enter(PipelineState.STRATEGIZING, token)
            strategy = await self._strategize(profile, request, token, degraded)

            self._enter(PipelineState.WRITING, token)
            copy = await self._write_copy(profile, request.style, strategy, token, degraded)
        except GenerationCancelled:
            self._enter(PipelineState.CANCELLED, token)
            raise

        if degraded:
            logger.warning("Generation continued with degraded stages: %s", ", ".join(degraded))

        return AdPlan(profile=profile, strategy=strategy, copy=copy, degraded_stages=tuple(degraded))

    async def render(
        self,
        source: SourceImage,
        request: GenerationRequest,
        plan: AdPlan,
        token: Optional[CancellationToken] = None,
    ) -> AdRecord:
        """Run the image transform. Raises `TierExhaustedError` when every tier fails."""
        token = token or CancellationToken()
        instruction = request.custom_instruction or plan.strategy.image_prompt
        self._claim(token)

        self._enter(PipelineState.TRANSFORMING, token)
        try:
            rendered = await self.transform.transform(
                source,
                request.style,
                request.aspect_ratio,
                instruction,
                tier=request.quality_tier,
                token=token,
            )
        except GenerationCancelled:
            self._enter(PipelineState.CANCELLED, token)
            raise
        except GenerationFailed:
            self._enter(PipelineState.FAILED, token)
            raise

        self._enter(PipelineState.COMPLETE, token)
        return AdRecord(
            source_image=source,
            rendered_image=rendered,
            headline=plan.copy.headline,
            subheadline=plan.copy.subheadline,
            cta=plan.copy.cta,
            style=request.style,
            aspect_ratio=request.aspect_ratio,
        )

    def _claim(self, token: CancellationToken) -> None:
        if not token.cancelled:
            self._owner = token

    def _enter(self, state: PipelineState, token: CancellationToken) -> None:
        # A superseded run must not report over the run that replaced it.
        if token is not self._owner:
            logger.debug("Ignoring %s from a superseded run", state.value)
            return
        self.state = state
        logger.info("Pipeline state: %s", state.value)
        if self.on_state_change is not None:
            self.on_state_change(state)

    async def _analyze(
        self,
        source: SourceImage,
        token: CancellationToken,
        degraded: List[str],
    ) -> str:
        max_retries, delay = ANALYZE_RETRY

        async def identify() -> str:
            text = await token.run(self.provider.generate_text(ANALYZE_PROMPT, image=source))
            return str(text or "").strip() or EMPTY_ANALYSIS_NAME

        try:
            return await self.retry_policy.run(identify, max_retries, delay, token)
        except GenerationCancelled:
            raise
        except Exception as exc:
            logger.warning("Product analysis failed, using fallback: %s", exc)
            degraded.append("analyze")
            return FALLBACK_PRODUCT_NAME

    async def _research(
        self,
        product_name: str,
        token: CancellationToken,
        degraded: List[str],
    ) -> ProductProfile:
        max_retries, delay = RESEARCH_RETRY

        async def summarize() -> str:
            text = await token.run(
                self.provider.generate_text(build_research_prompt(product_name), grounded=True)
            )
            return str(text or "").strip()

        try:
            summary = await self.retry_policy.run(summarize, max_retries, delay, token)
        except GenerationCancelled:
            raise
        except Exception as exc:
            logger.warning("Product research failed, skipping: %s", exc)
            degraded.append("research")
            summary = ""

        return ProductProfile(name=product_name, description=summary or product_name)

    async def _strategize(
        self,
        profile: ProductProfile,
        request: GenerationRequest,
        token: CancellationToken,
        degraded: List[str],
    ) -> Strategy:
        prompt = build_strategy_prompt(profile.description, request.style)
        attempts = [STANDARD_STRATEGY]
        if request.complex_strategy:
            attempts.insert(0, HIGH_FIDELITY_STRATEGY)

        async def plan(tier: Tier) -> Strategy:
            payload = await token.run(
                self.provider.generate_text(prompt, schema=STRATEGY_SCHEMA, tier=tier)
            )
            return parse_strategy(payload)

        try:
            return await run_attempt_chain(attempts, plan, self.retry_policy, token)
        except GenerationCancelled:
            raise
        except Exception as exc:
            logger.warning("All strategy generation failed, using template: %s", exc)
            degraded.append("strategize")
            return fallback_strategy(request.style)

    async def _write_copy(
        self,
        profile: ProductProfile,
        style: AdStyle,
        strategy: Strategy,
        token: CancellationToken,
        degraded: List[str],
    ) -> Copy:
        max_retries, delay = COPY_RETRY
        prompt = build_copy_prompt(profile.description, style, strategy.copy_angle)

        async def write() -> Copy:
            payload = await token.run(self.provider.generate_text(prompt, schema=COPY_SCHEMA))
            return parse_copy(payload)

        try:
            return await self.retry_policy.run(write, max_retries, delay, token)
        except GenerationCancelled:
            raise
        except Exception as exc:
            logger.warning("Ad copy generation failed, using fallback: %s", exc)
            degraded.append("write")
            return FALLBACK_COPY
