#!/usr/bin/env python3
"""
Run the generation pipeline for one topic against the hosted models.

Prints every stage transition as it happens, then the final result. Optionally
writes the artifacts to an output directory.

Usage:
    python scripts/run_pipeline.py --topic "Why cats sleep so much"

    python scripts/run_pipeline.py \
        --topic "The history of coffee" \
        --style "vintage illustration" \
        --output-dir ./out \
        --thumbnail "a steaming cup of coffee on an old map"
"""
import argparse
import asyncio
import sys
from pathlib import Path

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from shared.errors import PipelineError
from shared.logging import get_logger
from shared.media import parse_data_uri
from shared.models.pipeline import RunResult
from modules.generation_client import ReplicateGenerationClient
from modules.pipeline_orchestrator import GenerationOrchestrator, StateChange
from modules.thumbnail_generator import ThumbnailRefiner

logger = get_logger("run_pipeline")

EXTENSIONS = {"image/png": ".png", "image/jpeg": ".jpg", "image/webp": ".webp", "audio/mp3": ".mp3", "video/mp4": ".mp4"}


def print_change(change: StateChange) -> None:
    if change.paragraph_index is None:
        print(f"[{change.timestamp:%H:%M:%S}] {change.stage.value:<7} -> {change.status.value}")
    else:
        print(f"[{change.timestamp:%H:%M:%S}]   paragraph {change.paragraph_index} -> {change.status.value}")


def save_artifact(uri: str, path: Path) -> Path:
    mime_type, content = parse_data_uri(uri)
    path = path.with_suffix(EXTENSIONS.get(mime_type, ".bin"))
    path.write_bytes(content)
    return path


def save_result(result: RunResult, output_dir: Path) -> None:
    output_dir.mkdir(parents=True, exist_ok=True)
    if result.script:
        (output_dir / "script.txt").write_text(
            "\n\n".join(part for part in (result.script.title, result.script.hook, result.script.body, result.script.cta) if part)
        )
    for p, image_set in enumerate(result.image_sets or []):
        for i, image in enumerate(image_set):
            save_artifact(image, output_dir / f"scene_{p:02d}_{i}")
    if result.audio:
        save_artifact(result.audio, output_dir / "narration")
    if result.video:
        saved = save_artifact(result.video, output_dir / "video")
        print(f"Video saved to {saved}")


async def main(args: argparse.Namespace) -> int:
    client = ReplicateGenerationClient()
    orchestrator = GenerationOrchestrator(client)

    handle = orchestrator.start(args.topic, style=args.style)
    handle.subscribe(print_change)
    print(f"Run {handle.run_id} started for topic: {args.topic}")

    try:
        result = await handle.result()
    except asyncio.CancelledError:
        handle.cancel()
        raise

    if not result.succeeded:
        print(f"Run failed at {result.failed_stage}: {result.error_kind}: {result.error}")
    else:
        print(f"Run completed: {len(result.paragraphs)} paragraphs, {len(result.flattened_images)} images")
        for index, cause in sorted(result.image_failures.items()):
            print(f"  paragraph {index} has no images: {cause}")

    output_dir = Path(args.output_dir) if args.output_dir else None
    if output_dir:
        save_result(result, output_dir)

    if args.thumbnail:
        refiner = ThumbnailRefiner(client)
        try:
            entry = await refiner.generate_initial(args.thumbnail)
        except PipelineError as e:
            print(f"Thumbnail failed: {e}")
        else:
            print("Thumbnail generated")
            if output_dir:
                save_artifact(entry.image, output_dir / "thumbnail")

    return 0 if result.succeeded else 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Generate a video for a topic")
    parser.add_argument("--topic", required=True, help="Video topic")
    parser.add_argument("--style", default=None, help="Artistic style for scene images")
    parser.add_argument("--output-dir", default=None, help="Directory to write artifacts to")
    parser.add_argument("--thumbnail", default=None, help="Also generate a thumbnail from this prompt")
    sys.exit(asyncio.run(main(parser.parse_args())))
