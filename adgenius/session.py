import logging
from typing import Optional

from .cancellation import CancellationToken
from .core import RequestPipeline
from .errors import GenerationFailed, PipelineBusyError
from .models import AdPlan, AdRecord, GenerationRequest, SourceImage
from .render import ExportedAd, FontSet, export_ad

logger = logging.getLogger(__name__)

ON_CONFLICT_CANCEL = "cancel"
ON_CONFLICT_REJECT = "reject"


class AdSession:
    """
    Holds the state of one user's ad: the uploaded photo, the last plan and
    the last finished record. Allows a single in-flight generation.

    A second `generate()` while one is running either cancels the first
    (`on_conflict="cancel"`) or is refused with `PipelineBusyError`
    (`on_conflict="reject"`).
    """

    def __init__(
        self,
        pipeline: RequestPipeline,
        on_conflict: str = ON_CONFLICT_CANCEL,
        fonts: Optional[FontSet] = None,
    ) -> None:
        if on_conflict not in (ON_CONFLICT_CANCEL, ON_CONFLICT_REJECT):
            raise ValueError(f"on_conflict must be 'cancel' or 'reject', got {on_conflict!r}")
        self.pipeline = pipeline
        self.on_conflict = on_conflict
        self.fonts = fonts

        self.source: Optional[SourceImage] = None
        self.request: Optional[GenerationRequest] = None
        self.plan: Optional[AdPlan] = None
        self.record: Optional[AdRecord] = None
        self.error: Optional[str] = None
        self._active: Optional[CancellationToken] = None

    @property
    def busy(self) -> bool:
        return self._active is not None

    def _claim(self, timeout: Optional[float]) -> CancellationToken:
        if self._active is not None:
            if self.on_conflict == ON_CONFLICT_REJECT:
                raise PipelineBusyError("A generation is already in progress")
            self._active.cancel("superseded by a new generation")
        token = CancellationToken(timeout=timeout)
        self._active = token
        return token

    def _release(self, token: CancellationToken) -> None:
        if self._active is token:
            self._active = None

    async def generate(
        self,
        source: SourceImage,
        request: GenerationRequest,
        timeout: Optional[float] = None,
    ) -> AdRecord:
        token = self._claim(timeout)
        self.source = source
        self.request = request
        self.plan = None
        self.record = None
        self.error = None

        try:
            plan = await self.pipeline.prepare(source, request, token)
            if self._active is token:
                self.plan = plan
            return self._finish(await self.pipeline.render(source, request, plan, token), token)
        except GenerationFailed as exc:
            self._fail(exc, token)
            raise
        finally:
            self._release(token)

    async def retry(self, timeout: Optional[float] = None) -> AdRecord:
        """Re-run only the image transform, reusing the stored strategy and copy."""
        if self.source is None or self.request is None or self.plan is None:
            raise GenerationFailed("Nothing to retry: no completed plan in this session")

        token = self._claim(timeout)
        source, request, plan = self.source, self.request, self.plan
        self.error = None

        try:
            return self._finish(await self.pipeline.render(source, request, plan, token), token)
        except GenerationFailed as exc:
            self._fail(exc, token)
            raise
        finally:
            self._release(token)

    def reset(self) -> None:
        if self._active is not None:
            self._active.cancel("session reset")
            self._active = None
        self.source = None
        self.request = None
        self.plan = None
        self.record = None
        self.error = None

    def export(self) -> ExportedAd:
        if self.record is None:
            raise GenerationFailed("Nothing to export: no finished ad in this session")
        return export_ad(self.record, fonts=self.fonts)

    def _finish(self, record: AdRecord, token: CancellationToken) -> AdRecord:
        if self._active is token:
            self.record = record
        return record

    def _fail(self, exc: GenerationFailed, token: CancellationToken) -> None:
        logger.error("Generation failed: %s", exc)
        if self._active is token:
            self.error = exc.user_message
