from typing import Optional


class AdGeniusError(Exception):
    """Base class for every error raised by the ad generation package."""


class NoImageGenerated(AdGeniusError):
    """The provider answered but declined to produce an image."""

    retryable = True

    def __init__(self, tier: Optional[str] = None) -> None:
        super().__init__(f"No image generated ({tier or 'unknown'} tier)")
        self.tier = tier


class InvalidStructuredOutput(AdGeniusError):
    """A structured response is missing one of its required fields."""


class GenerationCancelled(AdGeniusError):
    """The in-flight generation was cancelled or ran past its deadline."""


class PipelineBusyError(AdGeniusError):
    """A generation is already running for this session."""


class GenerationFailed(AdGeniusError):
    """
    Terminal failure surfaced to the caller.

    `user_message` is safe to show as-is; the underlying cause is chained.
    """

    USER_MESSAGE = "Something went wrong during generation. Please try again."

    def __init__(self, message: Optional[str] = None, stage: Optional[str] = None) -> None:
        super().__init__(message or self.USER_MESSAGE)
        self.user_message = self.USER_MESSAGE
        self.stage = stage


class TierExhaustedError(GenerationFailed):
    """Every tier of the image transform failed."""
