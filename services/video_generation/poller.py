"""
Video Job Poller

Runs a Veo video job end to end:
1. Make sure an API key is selected (via the optional KeySelector)
2. Submit the job (prompt, optional start frame, fixed output settings)
3. Poll the operation every few seconds until it reports done
4. Download the video bytes from the returned URI
5. Hand back a local object reference from the BlobStore

Callers see a single awaitable. There is no progress finer than
"still generating".
"""

import asyncio
import logging
from typing import Any, Callable, Optional

import httpx
from google.genai import types
from tenacity import AsyncRetrying, RetryError, retry_if_result, stop_after_attempt, stop_after_delay, wait_fixed

from core.config import Config, get_config
from services.media.client import default_client_factory
from services.media.data_urls import decode_inline
from services.media.errors import CredentialRequiredError, GenerationCancelled, VideoGenerationError

from .blob_store import BlobStore
from .credentials import KeySelector, resolve_api_key

logger = logging.getLogger(__name__)


class CancelToken:
    """Cooperative cancellation for the poll loop."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self.cancelled:
            raise GenerationCancelled()

    async def sleep(self, seconds: float):
        """Sleep for `seconds`, waking early with GenerationCancelled."""
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise GenerationCancelled()


class VideoJobPoller:
    """
    Submits and tracks a single video generation job.

    Usage:
        poller = VideoJobPoller(key_selector=PromptKeySelector(), blob_store=store)

        url = await poller.generate("A cat driving a car in a neon city")

        # Animate a still image
        url = await poller.generate("slow cinematic pan", start_image=data_url)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        key_selector: Optional[KeySelector] = None,
        blob_store: Optional[BlobStore] = None,
        client_factory: Callable[[str], Any] = default_client_factory,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            config: Optional config override
            key_selector: Key selection capability, None when the host has none
            blob_store: Where downloaded videos are kept
            client_factory: Builds an SDK client from a key
            http_client: Client used to download the finished video
        """
        self.config = config or get_config()
        self.key_selector = key_selector
        self.blob_store = blob_store or BlobStore(self.config.storage.blob_path)
        self._client_factory = client_factory
        self._http_client = http_client

    @property
    def api_key(self) -> str:
        return resolve_api_key(self.key_selector, self.config.api.gemini_api_key)

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.video.download_timeout_seconds)
        return self._http_client

    async def close(self):
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def ensure_api_key(self):
        """
        Make sure a key is selected before anything is submitted.

        Raises:
            CredentialRequiredError: the user did not select a key
        """
        if self.key_selector is None:
            return

        if await self.key_selector.has_selected_api_key():
            return

        logger.info("No API key selected, asking the user to choose one")
        if not await self.key_selector.open_select_key():
            raise CredentialRequiredError()

    async def generate(
        self,
        prompt: str,
        start_image: Optional[str] = None,
        mime_type: str = "image/png",
        cancel_token: Optional[CancelToken] = None,
    ) -> str:
        """
        Generate a video and return its local object reference.

        Args:
            prompt: Text description of the video
            start_image: Optional data URL or base64 image used as the first frame
            mime_type: Media type of the start image
            cancel_token: Stops the job before submission or during polling

        Raises:
            CredentialRequiredError: no key selected
            VideoGenerationError: no output, provider error, timeout or failed download
            GenerationCancelled: the token was cancelled
        """
        cancel_token = cancel_token or CancelToken()
        client = None

        try:
            cancel_token.raise_if_cancelled()
            await self.ensure_api_key()
            cancel_token.raise_if_cancelled()

            # Key is read after selection so a freshly chosen one is used
            api_key = self.api_key
            client = self._client_factory(api_key)

            operation = await self._submit(client, prompt, start_image, mime_type)
            operation = await self._await_completion(client, operation, cancel_token)

            video_uri = extract_video_uri(operation)
            data = await self._download(video_uri, api_key)

        except Exception as e:
            logger.error(f"Error generating video: {e}")
            raise

        finally:
            if client is not None:
                await client.aio.aclose()

        return self.blob_store.create(data, suffix=".mp4")

    async def _submit(self, client: Any, prompt: str, start_image: Optional[str], mime_type: str) -> Any:
        video_config = self.config.video
        image = None
        if start_image:
            image = types.Image(image_bytes=decode_inline(start_image), mime_type=mime_type)

        logger.info(
            f"Video request: model={self.config.models.video_model}, "
            f"start_frame={'yes' if image else 'no'}, prompt={prompt[:50]}..."
        )

        operation = await client.aio.models.generate_videos(
            model=self.config.models.video_model,
            prompt=prompt,
            image=image,
            config=types.GenerateVideosConfig(
                number_of_videos=video_config.number_of_videos,
                resolution=video_config.resolution,
                aspect_ratio=video_config.aspect_ratio,
            ),
        )

        logger.info(f"Video job submitted: {getattr(operation, 'name', None)}")
        return operation

    async def _await_completion(self, client: Any, operation: Any, cancel_token: CancelToken) -> Any:
        """Poll until the operation is done, bounded by the configured limits."""
        video_config = self.config.video
        polls = 0

        async def poll() -> Any:
            nonlocal operation, polls
            cancel_token.raise_if_cancelled()
            # First attempt inspects the submitted handle, later ones refresh it
            if polls:
                operation = await client.aio.operations.get(operation)
                logger.debug(f"Video job poll {polls}: done={operation.done}")
            polls += 1
            return operation

        stop = stop_after_attempt(video_config.max_polls + 1)
        if video_config.max_wait_seconds:
            stop = stop | stop_after_delay(video_config.max_wait_seconds)

        retrying = AsyncRetrying(
            stop=stop,
            wait=wait_fixed(video_config.poll_interval_seconds),
            retry=retry_if_result(lambda op: not op.done),
            sleep=cancel_token.sleep,
        )

        try:
            return await retrying(poll)
        except RetryError as e:
            raise VideoGenerationError(
                f"Video generation timed out after {polls - 1} polls.",
                error_code="POLL_TIMEOUT",
                provider="gemini",
            ) from e

    async def _download(self, video_uri: str, api_key: str) -> bytes:
        client = await self._get_http_client()
        # Keep the URI's own query (alt=media)
        url = httpx.URL(video_uri).copy_add_param("key", api_key)
        response = await client.get(url, follow_redirects=True)

        if not response.is_success:
            raise VideoGenerationError(
                f"Failed to download video: {response.reason_phrase}",
                error_code=f"HTTP_{response.status_code}",
                provider="gemini",
            )

        logger.info(f"Video downloaded ({len(response.content) / 1024 / 1024:.1f} MB)")
        return response.content


def extract_video_uri(operation: Any) -> str:
    """
    Pull the first generated video's URI out of a finished operation.

    Raises:
        VideoGenerationError: the job failed or produced no video
    """
    error = getattr(operation, "error", None)
    if error:
        message = error.get("message") if isinstance(error, dict) else str(error)
        raise VideoGenerationError(
            f"Video generation failed: {message}",
            error_code="PROVIDER_ERROR",
            provider="gemini",
        )

    response = getattr(operation, "response", None)
    videos = getattr(response, "generated_videos", None) or []
    video = getattr(videos[0], "video", None) if videos else None
    uri = getattr(video, "uri", None)

    if not uri:
        raise VideoGenerationError(
            "Video generation completed but no URI returned.",
            error_code="NO_OUTPUT",
            provider="gemini",
        )
    return uri
