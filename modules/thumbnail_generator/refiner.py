"""
Thumbnail refinement loop.

generate_initial starts a new history; refine iterates on the active version;
select_version moves the active pointer so the next refine branches from an
earlier version.
"""

from typing import Optional

from shared.errors import ThumbnailGenerationFailed, ValidationError
from shared.logging import get_logger
from shared.models.thumbnail import RefinementEntry
from modules.generation_client.port import RemoteGenerationPort
from modules.thumbnail_generator.history import RefinementHistory

logger = get_logger("thumbnail_generator")


class ThumbnailRefiner:
    """Drives RemoteGenerationPort.refine_image against a RefinementHistory."""

    def __init__(self, port: RemoteGenerationPort, history: Optional[RefinementHistory] = None):
        self._port = port
        self.history = history or RefinementHistory()

    async def generate_initial(self, prompt: str) -> RefinementEntry:
        """
        Generate a thumbnail from scratch and reset the history to it.

        Raises:
            ValidationError: If prompt is empty
            ThumbnailGenerationFailed: If the remote call fails (history unchanged)
        """
        prompt = self._require_prompt(prompt)
        logger.info("Generating initial thumbnail", extra={"prompt_length": len(prompt)})

        image = await self._generate(prompt, base_image=None)
        entry = self.history.start_session(image, prompt)
        logger.info("Initial thumbnail generated", extra={"session": entry.session})
        return entry

    async def refine(self, prompt: str) -> RefinementEntry:
        """
        Refine the active thumbnail; the result is appended and becomes active.

        Raises:
            ValidationError: If prompt is empty or there is nothing to refine
            ThumbnailGenerationFailed: If the remote call fails (history unchanged)
        """
        prompt = self._require_prompt(prompt)
        base = self.history.active
        if base is None:
            raise ValidationError("No thumbnail to refine; call generate_initial first")

        logger.info(
            "Refining thumbnail",
            extra={"base_index": base.index, "version_count": len(self.history)}
        )
        image = await self._generate(prompt, base_image=base.image)
        entry = self.history.append(image, prompt, base_index=base.index)
        logger.info("Thumbnail refined", extra={"index": entry.index, "base_index": base.index})
        return entry

    def select_version(self, index: int) -> RefinementEntry:
        """
        Make an earlier (or later) version active without changing history.

        Raises:
            ValidationError: If index is out of range
        """
        entry = self.history.select(index)
        logger.info("Thumbnail version selected", extra={"index": index})
        return entry

    async def _generate(self, prompt: str, base_image: Optional[str]) -> str:
        try:
            image = await self._port.refine_image(prompt, base_image=base_image)
        except Exception as e:
            logger.error(
                "Thumbnail generation failed",
                extra={"error": str(e), "error_type": type(e).__name__, "refinement": base_image is not None}
            )
            raise ThumbnailGenerationFailed(str(e) or type(e).__name__) from e
        if not isinstance(image, str) or not image:
            raise ThumbnailGenerationFailed("thumbnail model returned no image")
        return image

    @staticmethod
    def _require_prompt(prompt: str) -> str:
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt must be a non-empty string")
        return prompt.strip()
