"""
Media Request Client

Shapes prompt enhancement and image generation/edit requests for the Gemini
API and extracts usable results from the responses.

Two result policies live here:
- Enhancement is cosmetic: any failure returns the original prompt.
- Image generation is fail-closed: call errors reach the caller unmodified,
  while a response without an image is reported as None.
"""

import logging
from typing import Any, Callable, Optional

from google import genai
from google.genai import types

from core.config import Config, get_config
from core.outcome import recover

from .data_urls import decode_inline, to_data_url

logger = logging.getLogger(__name__)


ENHANCE_TEMPLATE = (
    "You are an expert AI prompt engineer. Rewrite the following simple prompt to be "
    "highly descriptive, artistic, and optimized for a generative AI model (image or video). "
    "Keep it under 50 words. Only return the enhanced prompt text, no explanations.\n\n"
    'Original Prompt: "{prompt}"'
)


def default_client_factory(api_key: str) -> Any:
    """Build a Gemini client for the given key."""
    return genai.Client(api_key=api_key)


class MediaRequestClient:
    """
    Client for text enhancement and image generation.

    Usage:
        client = MediaRequestClient()

        prompt = await client.enhance_prompt("a red fox")
        data_url = await client.generate_image(prompt)

        # Edit mode
        data_url = await client.generate_image(
            "make it snow", reference_image=previous_url, mime_type="image/png"
        )
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        api_key_provider: Optional[Callable[[], str]] = None,
        client_factory: Callable[[str], Any] = default_client_factory,
    ):
        """
        Args:
            config: Optional config override
            api_key_provider: Returns the key to use; read on every call so a
                key selected mid-session takes effect immediately
            client_factory: Builds an SDK client from a key
        """
        self.config = config or get_config()
        self._api_key_provider = api_key_provider or (lambda: self.config.api.gemini_api_key)
        self._client_factory = client_factory

    def _get_client(self) -> Any:
        return self._client_factory(self._api_key_provider())

    async def _request_enhancement(self, original_prompt: str) -> str:
        response = await self._get_client().aio.models.generate_content(
            model=self.config.models.text_model,
            contents=ENHANCE_TEMPLATE.format(prompt=original_prompt),
        )
        return (response.text or "").strip()

    async def enhance_prompt(self, original_prompt: str) -> str:
        """
        Rewrite a prompt to be more descriptive.

        Never raises. Returns the original prompt when the call fails or the
        model returns no text.
        """
        outcome = await recover(
            self._request_enhancement(original_prompt),
            fallback="",
            label="Prompt enhancement",
        )
        return outcome.value or original_prompt

    async def generate_image(
        self,
        prompt: str,
        reference_image: Optional[str] = None,
        mime_type: str = "image/png",
    ) -> Optional[str]:
        """
        Generate or edit an image.

        Args:
            prompt: Text description, or edit instruction when a reference is given
            reference_image: Optional data URL or base64 string to edit
            mime_type: Media type of the reference image

        Returns:
            A `data:image/png;base64,...` URL, or None if the model returned no image

        Raises:
            Whatever the underlying SDK call raises
        """
        parts = []
        if reference_image:
            parts.append(types.Part.from_bytes(data=decode_inline(reference_image), mime_type=mime_type))
        parts.append(types.Part.from_text(text=prompt))

        mode = "edit" if reference_image else "create"
        logger.info(f"Image request ({mode}): model={self.config.models.image_model}, prompt={prompt[:50]}...")

        try:
            response = await self._get_client().aio.models.generate_content(
                model=self.config.models.image_model,
                contents=types.Content(role="user", parts=parts),
            )
        except Exception as e:
            logger.error(f"Error generating image: {e}")
            raise

        data = extract_inline_image(response)
        if data is None:
            logger.warning("No image found in response")
            return None

        return to_data_url(data, "image/png")


def extract_inline_image(response: Any) -> Optional[bytes]:
    """Return the first inline binary payload of the first candidate."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None

    content = getattr(candidates[0], "content", None)
    for part in getattr(content, "parts", None) or []:
        inline = getattr(part, "inline_data", None)
        if inline is not None and inline.data:
            return inline.data

    return None
