import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .models import Tier


@dataclass(frozen=True)
class Settings:
    openai_api_key: Optional[str] = None
    replicate_api_token: Optional[str] = None
    text_model: str = "gpt-4o-mini"
    text_model_high: str = "gpt-4o"
    image_model: str = "google/nano-banana"
    image_model_high: str = "google/nano-banana-pro"
    font_path: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        """
        Build settings from the environment, reading a local .env file first
        (e.g. OPENAI_API_KEY=sk-...).
        """
        if dotenv:
            load_dotenv()

        defaults = cls()
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            replicate_api_token=os.getenv("REPLICATE_API_TOKEN"),
            text_model=os.getenv("ADGENIUS_TEXT_MODEL", defaults.text_model),
            text_model_high=os.getenv("ADGENIUS_TEXT_MODEL_HIGH", defaults.text_model_high),
            image_model=os.getenv("ADGENIUS_IMAGE_MODEL", defaults.image_model),
            image_model_high=os.getenv("ADGENIUS_IMAGE_MODEL_HIGH", defaults.image_model_high),
            font_path=os.getenv("ADGENIUS_FONT_PATH") or None,
            log_level=os.getenv("ADGENIUS_LOG_LEVEL", defaults.log_level).upper(),
        )

    def text_model_for(self, tier: Tier) -> str:
        return self.text_model_high if Tier(tier) is Tier.HIGH_FIDELITY else self.text_model

    def image_model_for(self, tier: Tier) -> str:
        return self.image_model_high if Tier(tier) is Tier.HIGH_FIDELITY else self.image_model
