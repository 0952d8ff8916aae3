import argparse
import asyncio
import logging
import sys
from pathlib import Path

from adgenius.config import Settings
from adgenius.core import RequestPipeline
from adgenius.errors import GenerationCancelled, GenerationFailed
from adgenius.generator import GenAIProvider
from adgenius.models import AdStyle, AspectRatio, GenerationRequest, PipelineState, SourceImage, Tier
from adgenius.render import FontSet
from adgenius.session import AdSession


STATUS_MESSAGES = {
    PipelineState.ANALYZING: "🔍 Analyzing product image...",
    PipelineState.RESEARCHING: "🌐 Researching selling points...",
    PipelineState.STRATEGIZING: "🧠 Planning the ad strategy...",
    PipelineState.WRITING: "✍️  Writing ad copy...",
    PipelineState.TRANSFORMING: "🎨 Generating the ad background...",
}


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Turn a product photo into a finished advertisement."
    )
    parser.add_argument(
        "--image",
        type=Path,
        required=True,
        help="Path to the product photo.",
    )
    parser.add_argument(
        "--style",
        choices=[style.name.lower() for style in AdStyle],
        default="studio",
        help="Visual style of the ad.",
    )
    parser.add_argument(
        "--aspect-ratio",
        choices=[ratio.value for ratio in AspectRatio],
        default=AspectRatio.SQUARE.value,
        help="Output aspect ratio.",
    )
    parser.add_argument(
        "--instruction",
        default=None,
        help="Free-text art direction; overrides the generated image prompt.",
    )
    parser.add_argument(
        "--high-fidelity",
        action="store_true",
        help="Try the high-fidelity image model first (falls back to standard).",
    )
    parser.add_argument(
        "--simple-strategy",
        action="store_true",
        help="Skip the high-fidelity model when planning the ad strategy.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("outputs"),
        help="Folder where the exported ad is written.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Abort the generation after this many seconds.",
    )
    return parser.parse_args()


def report_state(state: PipelineState) -> None:
    message = STATUS_MESSAGES.get(state)
    if message:
        print(message, flush=True)


async def generate(args: argparse.Namespace, settings: Settings) -> int:
    provider = GenAIProvider(settings)
    pipeline = RequestPipeline(provider, on_state_change=report_state)
    session = AdSession(pipeline, fonts=FontSet.load(settings.font_path))

    request = GenerationRequest(
        style=AdStyle[args.style.upper()],
        aspect_ratio=AspectRatio(args.aspect_ratio),
        custom_instruction=args.instruction,
        quality_tier=Tier.HIGH_FIDELITY if args.high_fidelity else Tier.STANDARD,
        complex_strategy=not args.simple_strategy,
    )
    source = SourceImage.from_path(args.image)

    try:
        try:
            await session.generate(source, request, timeout=args.timeout)
        except GenerationFailed:
            print(f"⚠️  {session.error} Retrying the image step once...", flush=True)
            await session.retry(timeout=args.timeout)
    except GenerationFailed:
        print(f"❌ {session.error}", flush=True)
        return 1
    except GenerationCancelled as exc:
        print(f"❌ Generation cancelled: {exc}", flush=True)
        return 1

    record = session.record
    print(f"Headline: {record.headline}")
    print(f"Subheadline: {record.subheadline}")
    print(f"CTA: {record.cta}")

    exported = session.export()
    args.output_dir.mkdir(parents=True, exist_ok=True)
    output_path = args.output_dir / exported.filename
    output_path.write_bytes(exported.data)
    print(f"✅ Saved ad to {output_path}")
    return 0


def main() -> None:
    # Load environment variables from a local .env file if present
    # (e.g. OPENAI_API_KEY=sk-..., REPLICATE_API_TOKEN=r8_...).
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    args = parse_args()
    sys.exit(asyncio.run(generate(args, settings)))


if __name__ == "__main__":
    main()
