"""
Hosted-model implementation of RemoteGenerationPort.

Script and narration go through OpenAI; images, thumbnails and video go
through Replicate. Every artifact is downloaded and handed back as a data URI.
"""

import asyncio
import json
import time
from typing import Any, List, Optional, Tuple

import httpx
import replicate
from openai import APIError, APITimeoutError, AsyncOpenAI
from openai import RateLimitError as OpenAIRateLimitError
from replicate.exceptions import ReplicateError

from shared.config import settings
from shared.errors import ConfigError, GenerationError, RateLimitError, RetryableError
from shared.logging import get_logger
from shared.media import to_data_uri
from shared.models.pipeline import JobHandle, JobStatus, Script
from shared.retry import retry_with_backoff
from modules.generation_client.port import RemoteGenerationPort, VideoSubmission
from modules.generation_client.prompts import (
    SCRIPT_SYSTEM_PROMPT,
    build_scene_image_prompt,
    build_script_user_prompt,
    build_thumbnail_prompt,
    build_video_prompt,
)

logger = get_logger("generation_client")

PROVIDER_NAME = "replicate"

# Replicate prediction states
TERMINAL_SUCCESS = "succeeded"
TERMINAL_FAILURE = ("failed", "canceled")


def parse_retry_after_header(headers) -> Optional[float]:
    """Read Retry-After (seconds) from response headers, case-insensitively."""
    for key in ("Retry-After", "retry-after"):
        value = headers.get(key)
        if value is not None:
            try:
                return float(value)
            except (TypeError, ValueError):
                return None
    return None


def extract_output_url(output: Any) -> str:
    """
    Pull a URL out of a Replicate output.

    Replicate returns a list, a FileOutput (which has .url) or a plain string
    depending on the model.
    """
    output_item = output[0] if isinstance(output, list) and output else output
    if not output_item:
        raise GenerationError("No output returned from Replicate")
    url = output_item.url if hasattr(output_item, "url") else str(output_item)
    if not isinstance(url, str):
        url = str(url)
    if not url:
        raise GenerationError("No output URL returned from Replicate")
    return url


@retry_with_backoff(max_attempts=3, base_delay=2)
async def download_output(url: str, timeout: float) -> Tuple[bytes, Optional[str]]:
    """
    Download a generated artifact.

    Returns:
        Tuple of (content bytes, content type header or None)

    Raises:
        RateLimitError / RetryableError: On 429 / transient failures (retried)
        GenerationError: On other HTTP errors
    """
    try:
        async with httpx.AsyncClient(timeout=timeout) as http_client:
            response = await http_client.get(url)
            if response.status_code == 429:
                raise RateLimitError(
                    "Rate limited while downloading output",
                    retry_after=parse_retry_after_header(response.headers),
                )
            if response.status_code >= 500:
                raise RetryableError(f"Output download failed with HTTP {response.status_code}")
            response.raise_for_status()
            return response.content, response.headers.get("content-type")
    except (httpx.TimeoutException, httpx.NetworkError) as e:
        raise RetryableError(f"Output download failed: {str(e)}") from e
    except httpx.HTTPStatusError as e:
        raise GenerationError(f"Output download failed: {str(e)}") from e


class ReplicateGenerationClient(RemoteGenerationPort):
    """RemoteGenerationPort backed by OpenAI (text, speech) and Replicate (images, video)."""

    def __init__(
        self,
        openai_client: Optional[AsyncOpenAI] = None,
        replicate_client: Optional[replicate.Client] = None,
        images_per_paragraph: Optional[int] = None,
    ):
        self._openai = openai_client
        self._replicate = replicate_client
        self._images_per_paragraph = images_per_paragraph or settings.images_per_paragraph

    def _get_openai(self) -> AsyncOpenAI:
        if self._openai is None:
            if not settings.openai_api_key:
                raise ConfigError("OPENAI_API_KEY is required for script and audio generation")
            self._openai = AsyncOpenAI(api_key=settings.openai_api_key)
        return self._openai

    def _get_replicate(self) -> replicate.Client:
        if self._replicate is None:
            if not settings.replicate_api_token:
                raise ConfigError("REPLICATE_API_TOKEN is required for image and video generation")
            self._replicate = replicate.Client(api_token=settings.replicate_api_token)
        return self._replicate

    async def _run_model(self, model: str, input_data: dict) -> Any:
        client = self._get_replicate()
        try:
            return await asyncio.to_thread(client.run, model, input=input_data)
        except ReplicateError as e:
            if getattr(e, "status", None) == 429:
                raise RateLimitError(f"Replicate rate limit: {str(e)}") from e
            raise GenerationError(f"Replicate model {model} failed: {str(e)}") from e

    async def _fetch_as_data_uri(self, output: Any, default_mime: str) -> str:
        url = extract_output_url(output)
        content, content_type = await download_output(url, settings.download_timeout_seconds)
        mime_type = (content_type or default_mime).split(";")[0].strip() or default_mime
        return to_data_uri(content, mime_type)

    async def generate_script(self, topic: str) -> Script:
        client = self._get_openai()
        logger.info("Generating script", extra={"topic_length": len(topic), "model": settings.script_model})
        try:
            response = await client.chat.completions.create(
                model=settings.script_model,
                messages=[
                    {"role": "system", "content": SCRIPT_SYSTEM_PROMPT},
                    {"role": "user", "content": build_script_user_prompt(topic)},
                ],
                response_format={"type": "json_object"},
                temperature=0.7,
                timeout=90.0,
            )
        except OpenAIRateLimitError as e:
            raise RateLimitError(f"OpenAI rate limit: {str(e)}") from e
        except APITimeoutError as e:
            raise RetryableError(f"OpenAI timeout: {str(e)}") from e
        except APIError as e:
            raise GenerationError(f"OpenAI error: {str(e)}") from e

        content = response.choices[0].message.content
        if not content:
            raise GenerationError("Script model returned an empty response")
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise GenerationError(f"Script model returned invalid JSON: {str(e)}") from e

        body = data.get("script")
        if not isinstance(body, str) or not body.strip():
            raise GenerationError("Script model response is missing the script body")
        return Script(
            body=body,
            title=str(data.get("title", "")),
            hook=str(data.get("hook", "")),
            cta=str(data.get("cta", "")),
        )

    async def generate_images_for_paragraph(
        self,
        paragraph: str,
        prompt: Optional[str] = None,
        style: Optional[str] = None,
    ) -> List[str]:
        image_prompt = build_scene_image_prompt(paragraph, prompt, style)
        input_data = {"prompt": image_prompt, "aspect_ratio": "16:9", "output_format": "png"}

        async def generate_one() -> str:
            output = await self._run_model(settings.image_model, dict(input_data))
            return await self._fetch_as_data_uri(output, "image/png")

        return list(await asyncio.gather(*(generate_one() for _ in range(self._images_per_paragraph))))

    async def generate_audio(self, script: str) -> str:
        client = self._get_openai()
        try:
            response = await client.audio.speech.create(
                model=settings.tts_model,
                voice=settings.tts_voice,
                input=script,
                response_format="mp3",
            )
        except OpenAIRateLimitError as e:
            raise RateLimitError(f"OpenAI rate limit: {str(e)}") from e
        except APIError as e:
            raise GenerationError(f"Speech generation failed: {str(e)}") from e

        content = response.content
        if not content:
            raise GenerationError("No audio returned from the speech model")
        return to_data_uri(content, "audio/mp3")

    async def generate_video(self, script: str, images: List[str], audio: str) -> VideoSubmission:
        client = self._get_replicate()
        input_data = {
            "prompt": build_video_prompt(script),
            "aspect_ratio": "16:9",
        }
        if images:
            input_data["image"] = images[0]
            input_data["reference_images"] = images
        if audio:
            input_data["audio"] = audio

        start_time = time.time()
        try:
            prediction = await asyncio.to_thread(
                client.predictions.create,
                model=settings.video_model,
                input=input_data,
            )
        except ReplicateError as e:
            raise GenerationError(f"Failed to start video generation: {str(e)}") from e

        logger.info(
            "Video prediction created",
            extra={
                "job_id": prediction.id,
                "model": settings.video_model,
                "image_count": len(images),
                "status": prediction.status,
                "create_time": time.time() - start_time,
            }
        )

        if prediction.status == TERMINAL_SUCCESS:
            return await self._fetch_as_data_uri(prediction.output, "video/mp4")
        return JobHandle(job_id=prediction.id, provider=PROVIDER_NAME, metadata={"model": settings.video_model})

    async def check_video_job(self, handle: JobHandle) -> JobStatus:
        client = self._get_replicate()
        try:
            prediction = await asyncio.to_thread(client.predictions.get, handle.job_id)
        except ReplicateError as e:
            raise GenerationError(f"Failed to query video job {handle.job_id}: {str(e)}") from e

        if prediction.status == TERMINAL_SUCCESS:
            artifact = await self._fetch_as_data_uri(prediction.output, "video/mp4")
            return JobStatus(done=True, artifact=artifact, status=prediction.status)
        if prediction.status in TERMINAL_FAILURE:
            error = getattr(prediction, "error", None) or f"prediction {prediction.status}"
            return JobStatus(done=True, error=str(error), status=prediction.status)
        return JobStatus(done=False, status=prediction.status)

    async def refine_image(self, prompt: str, base_image: Optional[str] = None) -> str:
        input_data = {"prompt": build_thumbnail_prompt(prompt), "aspect_ratio": "16:9", "output_format": "png"}
        if base_image:
            input_data["input_image"] = base_image
        output = await self._run_model(settings.thumbnail_model, input_data)
        return await self._fetch_as_data_uri(output, "image/png")
