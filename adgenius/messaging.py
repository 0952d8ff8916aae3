import json
from typing import Any, Dict, Optional, Union

from .errors import InvalidStructuredOutput
from .models import AdStyle, Copy, Strategy, Tier


FALLBACK_PRODUCT_NAME = "A high-quality product"
EMPTY_ANALYSIS_NAME = "A product"

FALLBACK_COPY = Copy(
    headline="Experience Excellence",
    subheadline="The perfect choice for you.",
    cta="Shop Now",
)

ANALYZE_PROMPT = "Identify this product. Return just the product name."

STRATEGY_SCHEMA: Dict[str, Any] = {
    "title": "AdStrategy",
    "description": "Creative direction for a single product advertisement.",
    "type": "object",
    "properties": {
        "imagePrompt": {"type": "string"},
        "copyAngle": {"type": "string"},
    },
    "required": ["imagePrompt", "copyAngle"],
}

COPY_SCHEMA: Dict[str, Any] = {
    "title": "AdCopy",
    "description": "Headline, subheadline and call to action for an advertisement.",
    "type": "object",
    "properties": {
        "headline": {"type": "string"},
        "subheadline": {"type": "string"},
        "cta": {"type": "string"},
    },
    "required": ["headline", "subheadline", "cta"],
}


def fallback_strategy(style: AdStyle) -> Strategy:
    """Deterministic strategy used when every strategy attempt failed."""
    return Strategy(
        image_prompt=(
            f"A professional photo of the product in {AdStyle(style).value} style. "
            "High quality, commercial lighting."
        ),
        copy_angle="Focus on quality and premium features.",
    )


def build_research_prompt(product_name: str) -> str:
    return f"Summarize top 3 selling points for: {product_name}."


def build_strategy_prompt(product_description: str, style: AdStyle) -> str:
    return (
        f"Create ad strategy for {product_description} in {AdStyle(style).value} style. "
        "Return JSON with 'imagePrompt' and 'copyAngle'."
    )


def build_copy_prompt(
    product_description: str,
    style: AdStyle,
    angle: Optional[str] = None,
) -> str:
    angle_part = f" Angle: {angle}." if angle else ""
    return (
        f"Write ad copy for {product_description}. Style: {AdStyle(style).value}."
        f"{angle_part} Return JSON: headline, subheadline, cta."
    )


def build_transform_prompt(
    style: AdStyle,
    instruction: Optional[str],
    tier: Tier,
) -> str:
    """
    Prompt for the image-to-image transform.

    The high-fidelity model gets a richer art direction brief; the standard
    model gets a shorter one focused on preserving the product.
    """
    style_label = AdStyle(style).value

    if Tier(tier) is Tier.HIGH_FIDELITY:
        lines = [
            "Create a masterpiece commercial advertisement featuring this product.",
            f"Style Theme: {style_label}.",
        ]
        if instruction:
            lines.append(f"Specific Instructions: {instruction}")
        lines += [
            "",
            "Visual Guidelines:",
            "- Ultra-photorealistic, 8k UHD, highly detailed texture",
            "- Cinematic lighting with perfect shadows and highlights",
            "- Sophisticated composition following the rule of thirds",
            "- Luxurious and premium atmosphere",
            "- Ensure the product is the clear focal point",
        ]
    else:
        lines = [
            "Transform this product image into a high-end professional advertisement.",
            f"Style: {style_label}.",
        ]
        if instruction:
            lines.append(f"User Instructions: {instruction}")
        lines += [
            "",
            "Key Requirements:",
            "- Photorealistic 8k resolution",
            "- Professional studio lighting and composition",
            "- Preserve the product's core details and branding",
            "- Clean, commercial aesthetic suitable for high-end marketing",
            "- Seamless integration with the background",
        ]

    return "\n".join(lines)


def parse_strategy(payload: Union[str, Dict[str, Any], None]) -> Strategy:
    data = _required_fields(payload, STRATEGY_SCHEMA)
    return Strategy(image_prompt=data["imagePrompt"], copy_angle=data["copyAngle"])


def parse_copy(payload: Union[str, Dict[str, Any], None]) -> Copy:
    data = _required_fields(payload, COPY_SCHEMA)
    return Copy(headline=data["headline"], subheadline=data["subheadline"], cta=data["cta"])


def _required_fields(
    payload: Union[str, Dict[str, Any], None],
    schema: Dict[str, Any],
) -> Dict[str, str]:
    """
    Normalize a structured response and make sure every required field is a
    non-empty string. Providers that ignore the schema and answer with a JSON
    string are accepted too.
    """
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise InvalidStructuredOutput(f"{schema['title']}: response is not JSON") from exc

    if not isinstance(payload, dict):
        raise InvalidStructuredOutput(f"{schema['title']}: expected an object, got {type(payload).__name__}")

    fields: Dict[str, str] = {}
    for name in schema["required"]:
        value = payload.get(name)
        if not isinstance(value, str) or not value.strip():
            raise InvalidStructuredOutput(f"{schema['title']}: missing required field '{name}'")
        fields[name] = value.strip()
    return fields
