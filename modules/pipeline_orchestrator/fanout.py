"""
Per-paragraph image fan-out.

Issues one generate_images_for_paragraph call per paragraph without waiting on
the others, waits for every call to settle, and reassembles the results in
paragraph order.

Under the fail_fast policy a single failed paragraph fails the whole stage and
the successful paragraphs are discarded. Under the continue policy failed
paragraphs get an empty image set and are reported separately.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from shared.errors import ImageGenerationFailed
from shared.logging import get_logger
from shared.models.pipeline import ImageFailurePolicy, StageStatus
from modules.generation_client.port import RemoteGenerationPort
from modules.pipeline_orchestrator.state import PipelineState

logger = get_logger("pipeline_orchestrator.fanout")


@dataclass
class FanOutResult:
    image_sets: List[List[str]]
    failures: Dict[int, str] = field(default_factory=dict)


def _validate_images(index: int, images) -> List[str]:
    if not isinstance(images, (list, tuple)) or not all(isinstance(image, str) for image in images):
        raise TypeError(f"paragraph {index} returned {type(images).__name__}, expected a list of image references")
    return list(images)


async def generate_image_sets(
    paragraphs: Sequence[str],
    port: RemoteGenerationPort,
    *,
    state: Optional[PipelineState] = None,
    concurrency_limit: Optional[int] = None,
    policy: ImageFailurePolicy = ImageFailurePolicy.FAIL_FAST,
    custom_prompts: Optional[Dict[int, str]] = None,
    style: Optional[str] = None,
) -> FanOutResult:
    """
    Generate one image set per paragraph, concurrently.

    Args:
        paragraphs: Script paragraphs, in order
        port: Remote generation capability
        state: PipelineState to receive per-paragraph status updates
        concurrency_limit: Max outstanding calls (None = one per paragraph)
        policy: fail_fast or continue
        custom_prompts: Paragraph index -> prompt replacing the default scene prompt
        style: Artistic style forwarded with every call

    Returns:
        FanOutResult with image_sets aligned to paragraphs

    Raises:
        ImageGenerationFailed: Any call failed (fail_fast), or every call failed (continue)
    """
    custom_prompts = custom_prompts or {}
    semaphore = asyncio.Semaphore(concurrency_limit) if concurrency_limit else None

    if state is not None:
        state.reset_paragraphs(len(paragraphs))

    def mark(index: int, status: StageStatus) -> None:
        if state is not None:
            state.set_paragraph_status(index, status)

    async def generate_one(index: int, paragraph: str) -> List[str]:
        if semaphore is not None:
            async with semaphore:
                return await call(index, paragraph)
        return await call(index, paragraph)

    async def call(index: int, paragraph: str) -> List[str]:
        mark(index, StageStatus.RUNNING)
        try:
            images = await port.generate_images_for_paragraph(
                paragraph,
                prompt=custom_prompts.get(index),
                style=style,
            )
            images = _validate_images(index, images)
        except asyncio.CancelledError:
            # Stage timeout or run cancellation; the paragraph will never finish
            mark(index, StageStatus.ERROR)
            raise
        except Exception as e:
            mark(index, StageStatus.ERROR)
            logger.warning(
                f"Image generation failed for paragraph {index}",
                extra={"paragraph_index": index, "error": str(e), "error_type": type(e).__name__}
            )
            raise
        mark(index, StageStatus.DONE)
        return images

    logger.info(
        f"Starting parallel image generation for {len(paragraphs)} paragraphs",
        extra={
            "paragraph_count": len(paragraphs),
            "concurrency_limit": concurrency_limit,
            "policy": policy.value,
        }
    )

    results = await asyncio.gather(
        *(generate_one(index, paragraph) for index, paragraph in enumerate(paragraphs)),
        return_exceptions=True,
    )

    image_sets: List[List[str]] = []
    failures: Dict[int, str] = {}
    for index, result in enumerate(results):
        if isinstance(result, BaseException):
            failures[index] = str(result) or type(result).__name__
            image_sets.append([])
        else:
            image_sets.append(result)

    logger.info(
        "Parallel image generation completed",
        extra={
            "paragraph_count": len(paragraphs),
            "successful_count": len(paragraphs) - len(failures),
            "failed_count": len(failures),
        }
    )

    if failures:
        first_index = min(failures)
        if policy == ImageFailurePolicy.FAIL_FAST or len(failures) == len(paragraphs):
            raise ImageGenerationFailed(failures[first_index], paragraph_index=first_index)

    return FanOutResult(image_sets=image_sets, failures=failures)
