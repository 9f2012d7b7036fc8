"""
Generation Orchestrator

Client-side state machine for a generation attempt:

    IDLE ──→ ENHANCING ──→ GENERATING ──→ SUCCESS
                 │              │
                 └──────────────┴──→ ERROR

ENHANCING is skipped when enhancement is off. IDLE is only re-entered by an
explicit reset: a new reference image, restoring from history, or using a
result as the new reference.

The orchestrator owns the working state, the active selection and the
history. It is the single place where user-visible error state is set.
"""

import asyncio
import inspect
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

from core.config import Config, get_config
from core.outcome import Propagated, propagate, recover
from services.history.store import HistoryStore
from services.media.client import MediaRequestClient
from services.media.data_urls import data_url_mime_type
from services.media.export import save_media
from services.video_generation.blob_store import BlobStore
from services.video_generation.credentials import KeySelector, resolve_api_key
from services.video_generation.poller import CancelToken, VideoJobPoller

from .state import (
    GeneratedItem,
    LoadingState,
    LoadingStatus,
    MediaKind,
    ReferenceImage,
    StudioSnapshot,
    StudioState,
    new_item_id,
    now_ms,
)

logger = logging.getLogger(__name__)

ENHANCING_MESSAGE = "Enhancing prompt..."
GENERATING_MESSAGES = {
    MediaKind.IMAGE: "Generating masterpiece...",
    MediaKind.VIDEO: "Rendering video (this takes a moment)...",
}
NO_RESULT_MESSAGES = {
    MediaKind.IMAGE: "No image generated.",
    MediaKind.VIDEO: "No video generated.",
}
GENERIC_ERROR_MESSAGE = "Something went wrong."

ChangeCallback = Callable[[StudioSnapshot], Union[None, Awaitable[None]]]


class GenerationOrchestrator:
    """
    Owns studio state and sequences enhance → generate → store.

    Usage:
        orchestrator = GenerationOrchestrator(
            media_client=MediaRequestClient(),
            video_poller=VideoJobPoller(),
            history=HistoryStore(path),
            on_change=render,
        )

        orchestrator.set_prompt("a red fox")
        orchestrator.set_enhance_enabled(True)
        item = await orchestrator.generate()
    """

    def __init__(
        self,
        media_client: MediaRequestClient,
        video_poller: VideoJobPoller,
        history: HistoryStore,
        blob_store: Optional[BlobStore] = None,
        on_change: Optional[ChangeCallback] = None,
        clock: Callable[[], int] = now_ms,
    ):
        """
        Args:
            media_client: Enhancement and image generation
            video_poller: Video generation
            history: Persisted history (loaded by the caller)
            blob_store: Store holding video payloads; defaults to the poller's
            on_change: Called with a snapshot after every state change. May be
                a coroutine function; its calls are awaited in order.
            clock: Epoch-millisecond clock for item timestamps
        """
        self.media_client = media_client
        self.video_poller = video_poller
        self.history = history
        self.blob_store = blob_store or video_poller.blob_store
        self.on_change = on_change
        self._clock = clock

        self._state = StudioState()
        self._cancel_token: Optional[CancelToken] = None
        self._last_timestamp = 0
        self._callback_tail: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    def snapshot(self) -> StudioSnapshot:
        state = self._state
        return StudioSnapshot(
            active_tab=state.active_tab,
            prompt=state.prompt,
            reference_image=state.reference_image,
            active_item=state.active_item,
            enhance_enabled=state.enhance_enabled,
            loading=state.loading,
            history=self.history.items,
        )

    @property
    def status(self) -> LoadingStatus:
        return self._state.loading.status

    @property
    def is_busy(self) -> bool:
        return self.status.is_busy

    def _notify(self):
        if not self.on_change:
            return

        try:
            result = self.on_change(self.snapshot())
        except Exception as e:
            logger.warning(f"State change callback failed: {e}")
            return

        if inspect.isawaitable(result):
            self._schedule_callback(result)

    def _schedule_callback(self, result: Awaitable[Any]):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Async state change callback needs a running event loop, skipped")
            if inspect.iscoroutine(result):
                result.close()
            return

        # Each call waits for the one before it
        self._callback_tail = loop.create_task(self._run_callback(self._callback_tail, result))

    async def _run_callback(self, previous: Optional[asyncio.Task], result: Awaitable[Any]):
        if previous is not None:
            await previous
        try:
            await result
        except Exception as e:
            logger.warning(f"State change callback failed: {e}")

    async def flush_callbacks(self):
        """Wait until every scheduled async callback has run."""
        while self._callback_tail is not None:
            tail = self._callback_tail
            await tail
            if self._callback_tail is tail:
                self._callback_tail = None

    async def _advance(self, status: LoadingStatus, message: Optional[str] = None):
        self._transition(status, message)
        await self.flush_callbacks()

    def _transition(self, status: LoadingStatus, message: Optional[str] = None):
        logger.debug(f"Status {self._state.loading.status.value} -> {status.value}")
        self._state.loading = LoadingState(status=status, message=message)
        self._notify()

    # ------------------------------------------------------------------
    # Working input
    # ------------------------------------------------------------------

    def set_prompt(self, prompt: str):
        self._state.prompt = prompt
        self._notify()

    def set_active_tab(self, tab: Union[MediaKind, str]):
        self._state.active_tab = MediaKind(tab)
        self._notify()

    def set_enhance_enabled(self, enabled: bool):
        self._state.enhance_enabled = enabled
        self._notify()

    def set_reference_image(self, data: str, mime_type: str = "image/png"):
        """Replace the reference image. Resets a finished attempt to idle."""
        self._state.reference_image = ReferenceImage(data=data, mime_type=mime_type)
        if not self.is_busy:
            self._state.loading = LoadingState()
        self._notify()

    def clear_reference_image(self):
        self._state.reference_image = None
        self._notify()

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate(self) -> Optional[GeneratedItem]:
        """
        Run one generation attempt with the current working state.

        Returns:
            The new item on success, otherwise None. Failures are reported
            through the loading state, never raised.
        """
        prompt = self._state.prompt
        if not prompt.strip():
            return None

        if self.is_busy:
            logger.warning("Generation already in progress, ignoring request")
            return None

        tab = self._state.active_tab
        reference = self._state.reference_image
        # Only a video job has a long wait that can be cancelled
        self._cancel_token = CancelToken() if tab == MediaKind.VIDEO else None

        self._set_active_item(None)

        if self._state.enhance_enabled:
            await self._advance(LoadingStatus.ENHANCING, ENHANCING_MESSAGE)
            enhanced = await recover(
                self.media_client.enhance_prompt(prompt),
                fallback=prompt,
                label="Prompt enhancement",
            )
            prompt = enhanced.value
            # Overwritten even when enhancement fell back to the original
            self._state.prompt = prompt

        await self._advance(LoadingStatus.GENERATING, GENERATING_MESSAGES[tab])

        outcome = await propagate(self._dispatch(tab, prompt, reference, self._cancel_token))
        self._cancel_token = None

        if isinstance(outcome, Propagated):
            logger.error(f"Generation failed: {type(outcome.error).__name__}: {outcome.error}")
            await self._advance(LoadingStatus.ERROR, outcome.message or GENERIC_ERROR_MESSAGE)
            return None

        url = outcome.value
        if not url:
            await self._advance(LoadingStatus.ERROR, NO_RESULT_MESSAGES[tab])
            return None

        item = self._new_item(url, prompt, tab)
        self._set_active_item(item)
        self._release(self.history.prepend(item))
        await self._advance(LoadingStatus.SUCCESS)

        logger.info(f"Generated {tab.value} {item.id}")
        return item

    async def _dispatch(
        self,
        tab: MediaKind,
        prompt: str,
        reference: Optional[ReferenceImage],
        cancel_token: Optional[CancelToken],
    ) -> Optional[str]:
        image = reference.data if reference else None
        mime_type = reference.mime_type if reference else "image/png"

        if tab == MediaKind.IMAGE:
            return await self.media_client.generate_image(prompt, image, mime_type)

        return await self.video_poller.generate(
            prompt,
            start_image=image,
            mime_type=mime_type,
            cancel_token=cancel_token,
        )

    def _new_item(self, url: str, prompt: str, tab: MediaKind) -> GeneratedItem:
        timestamp = max(self._clock(), self._last_timestamp)
        self._last_timestamp = timestamp
        return GeneratedItem(
            id=new_item_id(timestamp),
            url=url,
            prompt=prompt,
            timestamp=timestamp,
            type=tab,
        )

    def cancel(self) -> bool:
        """
        Cancel the in-flight video job.

        Returns:
            False when no video job is running. Image requests cannot be cancelled.
        """
        if self._cancel_token is None:
            return False
        self._cancel_token.cancel()
        return True

    # ------------------------------------------------------------------
    # Auxiliary operations
    # ------------------------------------------------------------------

    def use_as_reference(self) -> bool:
        """Use the displayed image as the next reference image."""
        if not self.snapshot().can_use_as_reference:
            return False

        item = self._state.active_item
        self._state.reference_image = ReferenceImage(data=item.url, mime_type=data_url_mime_type(item.url))
        self._set_active_item(None)
        self._transition(LoadingStatus.IDLE)
        return True

    def restore_from_history(self, item: GeneratedItem):
        """Show a past item and load its prompt and tab for editing."""
        self._set_active_item(item)
        self._state.prompt = item.prompt
        self._state.active_tab = item.type
        self._transition(LoadingStatus.IDLE)

    def clear_history(self, confirm: Optional[Callable[[], bool]] = None) -> bool:
        """
        Empty the history, in memory and on disk.

        Args:
            confirm: Asked before clearing; returning False aborts

        Returns:
            True if the history was cleared
        """
        if confirm is not None and not confirm():
            return False

        self._release(self.history.clear())
        logger.info("History cleared")
        self._notify()
        return True

    async def download(self, output_dir: Union[str, Path]) -> Optional[Path]:
        """Save the active selection's media. Returns None when nothing is shown."""
        item = self._state.active_item
        if item is None:
            return None
        return await save_media(item, output_dir, self.blob_store)

    # ------------------------------------------------------------------
    # Blob lifetime
    # ------------------------------------------------------------------

    def _set_active_item(self, item: Optional[GeneratedItem]):
        previous = self._state.active_item
        self._state.active_item = item
        if previous is not None and (item is None or previous.id != item.id):
            self._release([previous])

    def _release(self, items: Iterable[GeneratedItem]):
        """Revoke video payloads no longer displayed or remembered."""
        active = self._state.active_item
        for item in items:
            if item.type != MediaKind.VIDEO:
                continue
            if active is not None and active.id == item.id:
                continue
            if item in self.history:
                continue
            self.blob_store.revoke(item.url)


def create_orchestrator(
    config: Optional[Config] = None,
    key_selector: Optional[KeySelector] = None,
    on_change: Optional[ChangeCallback] = None,
    load_history: bool = True,
) -> GenerationOrchestrator:
    """
    Wire up an orchestrator from configuration.

    Args:
        config: Configuration (global config if None)
        key_selector: Key selection capability for video, None if unavailable
        on_change: State change callback for the presentation layer
        load_history: Read the persisted history before returning

    Returns:
        Ready-to-use GenerationOrchestrator
    """
    config = config or get_config()
    blob_store = BlobStore(config.storage.blob_path)

    media_client = MediaRequestClient(
        config=config,
        api_key_provider=lambda: resolve_api_key(key_selector, config.api.gemini_api_key),
    )
    video_poller = VideoJobPoller(config=config, key_selector=key_selector, blob_store=blob_store)

    history = HistoryStore(config.storage.history_path, limit=config.storage.history_limit)
    if load_history:
        history.load()

    return GenerationOrchestrator(
        media_client=media_client,
        video_poller=video_poller,
        history=history,
        blob_store=blob_store,
        on_change=on_change,
    )
