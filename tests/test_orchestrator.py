"""
Generation Orchestrator Tests

Covers:
1. The generate() state machine for image and video tabs
2. Enhancement, including its fallback
3. Error reporting (no result, call failures, missing credential)
4. Auxiliary operations: use as reference, restore, clear, download
5. History bound, item identity and blob lifetime

Run with:
    python -m pytest tests/test_orchestrator.py -v
"""

import asyncio
import base64
import os
import string
import sys
import warnings
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import Config
from services.history import HistoryStore
from services.media.client import MediaRequestClient
from services.media.errors import GenerationCancelled
from services.orchestrator import (
    GeneratedItem,
    GenerationOrchestrator,
    LoadingStatus,
    MediaKind,
)
from services.orchestrator.state import new_item_id
from services.video_generation import BlobStore, StaticKeySelector, VideoJobPoller

IMAGE_URL = "data:image/png;base64," + base64.b64encode(b"PNG").decode()


class Recorder:
    """Collects the loading status of every snapshot."""

    def __init__(self):
        self.snapshots = []

    def __call__(self, snapshot):
        self.snapshots.append(snapshot)

    @property
    def statuses(self):
        return [s.loading.status for s in self.snapshots]

    def clear(self):
        self.snapshots.clear()


def make_media_client(enhanced="A russet fox in powder snow", image=IMAGE_URL):
    client = MagicMock()
    client.enhance_prompt = AsyncMock(return_value=enhanced)
    client.generate_image = AsyncMock(return_value=image)
    return client


def make_video_poller(blob_store, payload=b"MP4"):
    poller = MagicMock()
    poller.blob_store = blob_store
    poller.generate = AsyncMock(side_effect=lambda *args, **kwargs: blob_store.create(payload))
    return poller


@pytest.fixture
def blob_store(tmp_path):
    return BlobStore(tmp_path / "blobs")


@pytest.fixture
def history_path(tmp_path):
    return tmp_path / "nano-banana-history.json"


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def media_client():
    return make_media_client()


@pytest.fixture
def video_poller(blob_store):
    return make_video_poller(blob_store)


@pytest.fixture
def orchestrator(media_client, video_poller, history_path, blob_store, recorder):
    return GenerationOrchestrator(
        media_client=media_client,
        video_poller=video_poller,
        history=HistoryStore(history_path),
        blob_store=blob_store,
        on_change=recorder,
    )


def prepare(orchestrator, recorder, prompt, tab=MediaKind.IMAGE, enhance=False):
    orchestrator.set_active_tab(tab)
    orchestrator.set_enhance_enabled(enhance)
    orchestrator.set_prompt(prompt)
    recorder.clear()


class TestGenerate:
    """Test the generation state machine."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("prompt", ["", "   ", "\n\t"])
    async def test_blank_prompt_does_nothing(self, orchestrator, recorder, media_client, prompt):
        """Test that a blank prompt causes no transition and no remote call."""
        prepare(orchestrator, recorder, prompt, enhance=True)

        assert await orchestrator.generate() is None

        assert recorder.statuses == []
        assert orchestrator.status == LoadingStatus.IDLE
        media_client.enhance_prompt.assert_not_awaited()
        media_client.generate_image.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_image_without_enhancement(self, orchestrator, recorder, media_client):
        """Scenario A: idle → generating → success with one image item."""
        prepare(orchestrator, recorder, "a red fox")

        item = await orchestrator.generate()

        assert recorder.statuses == [LoadingStatus.GENERATING, LoadingStatus.SUCCESS]
        assert recorder.snapshots[0].loading.message == "Generating masterpiece..."
        assert item.type == MediaKind.IMAGE
        assert item.prompt == "a red fox"
        assert item.url == IMAGE_URL
        assert orchestrator.history.items == (item,)
        assert orchestrator.snapshot().active_item == item
        media_client.enhance_prompt.assert_not_awaited()
        media_client.generate_image.assert_awaited_once_with("a red fox", None, "image/png")

    @pytest.mark.asyncio
    async def test_image_with_enhancement(self, orchestrator, recorder):
        """Scenario B: the stored prompt is the enhanced text."""
        prepare(orchestrator, recorder, "a red fox", enhance=True)

        item = await orchestrator.generate()

        assert recorder.statuses == [
            LoadingStatus.ENHANCING,
            LoadingStatus.GENERATING,
            LoadingStatus.SUCCESS,
        ]
        assert recorder.snapshots[0].loading.message == "Enhancing prompt..."
        assert item.prompt == "A russet fox in powder snow"
        assert orchestrator.snapshot().prompt == "A russet fox in powder snow"

    @pytest.mark.asyncio
    async def test_no_image_is_an_error(self, orchestrator, recorder, media_client):
        """Scenario C: an empty result sets an error and leaves history unchanged."""
        media_client.generate_image.return_value = None
        prepare(orchestrator, recorder, "a red fox")

        assert await orchestrator.generate() is None

        snapshot = orchestrator.snapshot()
        assert recorder.statuses == [LoadingStatus.GENERATING, LoadingStatus.ERROR]
        assert snapshot.loading.message == "No image generated."
        assert snapshot.history == ()
        assert snapshot.active_item is None

    @pytest.mark.asyncio
    async def test_call_failure_message(self, orchestrator, recorder, media_client):
        """Test that a failed call surfaces its message."""
        media_client.generate_image.side_effect = PermissionError("API key not valid")
        prepare(orchestrator, recorder, "a red fox")

        await orchestrator.generate()

        assert orchestrator.snapshot().loading.message == "API key not valid"
        assert orchestrator.history.items == ()

    @pytest.mark.asyncio
    async def test_call_failure_without_message(self, orchestrator, recorder, media_client):
        """Test the generic fallback for errors without a message."""
        media_client.generate_image.side_effect = RuntimeError()
        prepare(orchestrator, recorder, "a red fox")

        await orchestrator.generate()

        assert orchestrator.status == LoadingStatus.ERROR
        assert orchestrator.snapshot().loading.message == "Something went wrong."

    @pytest.mark.asyncio
    async def test_failure_clears_previous_selection(self, orchestrator, recorder, media_client):
        """Test that the previous result is not shown after a failed attempt."""
        prepare(orchestrator, recorder, "a red fox")
        await orchestrator.generate()
        media_client.generate_image.side_effect = TimeoutError("deadline exceeded")

        await orchestrator.generate()

        assert orchestrator.snapshot().active_item is None
        assert len(orchestrator.history) == 1

    @pytest.mark.asyncio
    async def test_reference_image_is_passed(self, orchestrator, recorder, media_client):
        """Test that the reference image and its media type reach the client."""
        prepare(orchestrator, recorder, "make it snow")
        orchestrator.set_reference_image("data:image/jpeg;base64,AAAA", "image/jpeg")

        await orchestrator.generate()

        media_client.generate_image.assert_awaited_once_with(
            "make it snow", "data:image/jpeg;base64,AAAA", "image/jpeg"
        )

    @pytest.mark.asyncio
    async def test_video_tab(self, orchestrator, recorder, video_poller, blob_store):
        """Test that the video tab dispatches to the poller and stores a video item."""
        prepare(orchestrator, recorder, "a cat driving a car", tab=MediaKind.VIDEO)

        item = await orchestrator.generate()

        assert recorder.snapshots[0].loading.message == "Rendering video (this takes a moment)..."
        assert item.type == MediaKind.VIDEO
        assert blob_store.read(item.url) == b"MP4"
        assert video_poller.generate.await_args.args == ("a cat driving a car",)
        assert video_poller.generate.await_args.kwargs["start_image"] is None

    @pytest.mark.asyncio
    async def test_second_generate_while_busy_is_ignored(self, orchestrator, recorder, media_client):
        """Test that only one pipeline runs at a time."""
        release = asyncio.Event()

        async def slow_image(*args):
            await release.wait()
            return IMAGE_URL

        media_client.generate_image.side_effect = slow_image
        prepare(orchestrator, recorder, "a red fox")

        first = asyncio.create_task(orchestrator.generate())
        await asyncio.sleep(0)
        assert orchestrator.is_busy

        assert await orchestrator.generate() is None
        release.set()
        assert (await first) is not None
        assert media_client.generate_image.await_count == 1

    @pytest.mark.asyncio
    async def test_unique_ids_and_bounded_history(self, orchestrator, recorder, history_path):
        """Test 25 generations: unique ids, newest 20 persisted most-recent-first."""
        prepare(orchestrator, recorder, "a red fox")

        items = [await orchestrator.generate() for _ in range(25)]

        assert len({item.id for item in items}) == 25
        assert all(item.type == MediaKind.IMAGE for item in items)
        persisted = HistoryStore(history_path).load()
        assert [item.id for item in persisted] == [item.id for item in reversed(items)][:20]

    @pytest.mark.asyncio
    async def test_timestamps_never_decrease(self, media_client, video_poller, history_path, blob_store):
        """Test that a clock going backwards does not reorder items."""
        ticks = iter([1_000, 900, 1_100])
        orchestrator = GenerationOrchestrator(
            media_client=media_client,
            video_poller=video_poller,
            history=HistoryStore(history_path),
            blob_store=blob_store,
            clock=lambda: next(ticks),
        )
        orchestrator.set_prompt("a red fox")

        stamps = [(await orchestrator.generate()).timestamp for _ in range(3)]

        assert stamps == [1_000, 1_000, 1_100]


class TestEnhancementFallback:
    """Test enhancement failure with the real client."""

    @pytest.mark.asyncio
    async def test_failed_enhancement_keeps_original_prompt(self, tmp_path, blob_store, recorder):
        """Test that a failed enhancement leaves the original prompt and still succeeds."""
        image = SimpleNamespace(
            candidates=[
                SimpleNamespace(
                    content=SimpleNamespace(
                        parts=[SimpleNamespace(inline_data=SimpleNamespace(data=b"PNG"), text=None)]
                    )
                )
            ]
        )

        async def generate_content(model, contents):
            if model == "gemini-2.5-flash":
                raise ConnectionError("network down")
            return image

        sdk = MagicMock()
        sdk.aio.models.generate_content = AsyncMock(side_effect=generate_content)
        orchestrator = GenerationOrchestrator(
            media_client=MediaRequestClient(config=Config(), client_factory=lambda key: sdk),
            video_poller=make_video_poller(blob_store),
            history=HistoryStore(tmp_path / "history.json"),
            blob_store=blob_store,
            on_change=recorder,
        )
        prepare(orchestrator, recorder, "a red fox", enhance=True)

        item = await orchestrator.generate()

        assert orchestrator.snapshot().prompt == "a red fox"
        assert item.prompt == "a red fox"
        assert orchestrator.status == LoadingStatus.SUCCESS


class TestVideoFailures:
    """Test video failures reported by the orchestrator."""

    @pytest.mark.asyncio
    async def test_missing_credential(self, tmp_path, media_client, recorder):
        """Scenario D: declined key selection errors before any submission."""
        config = Config()
        config.storage.data_dir = tmp_path
        sdk = MagicMock()
        sdk.aio.models.generate_videos = AsyncMock()
        poller = VideoJobPoller(
            config=config,
            key_selector=StaticKeySelector(""),
            client_factory=lambda key: sdk,
        )
        orchestrator = GenerationOrchestrator(
            media_client=media_client,
            video_poller=poller,
            history=HistoryStore(tmp_path / "history.json"),
            on_change=recorder,
        )
        prepare(orchestrator, recorder, "a cat driving a car", tab=MediaKind.VIDEO)

        assert await orchestrator.generate() is None

        assert recorder.statuses == [LoadingStatus.GENERATING, LoadingStatus.ERROR]
        assert "required" in orchestrator.snapshot().loading.message
        sdk.aio.models.generate_videos.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_reports_error(self, orchestrator, recorder, video_poller):
        """Test that cancelling the poll loop ends in the error state."""

        async def wait_for_cancel(*args, cancel_token, **kwargs):
            await cancel_token.sleep(30)

        video_poller.generate.side_effect = wait_for_cancel
        prepare(orchestrator, recorder, "a cat driving a car", tab=MediaKind.VIDEO)

        task = asyncio.create_task(orchestrator.generate())
        await asyncio.sleep(0)
        assert orchestrator.cancel() is True
        await task

        assert orchestrator.status == LoadingStatus.ERROR
        assert orchestrator.snapshot().loading.message == str(GenerationCancelled())
        assert orchestrator.cancel() is False

    @pytest.mark.asyncio
    async def test_cancel_during_enhancement_submits_nothing(self, tmp_path, recorder):
        """Test that cancelling a video attempt while enhancing never submits the job."""
        config = Config()
        config.api.gemini_api_key = "test-key"
        config.storage.data_dir = tmp_path
        sdk = MagicMock()
        sdk.aio.models.generate_videos = AsyncMock()
        sdk.aio.aclose = AsyncMock()
        release = asyncio.Event()

        async def slow_enhance(prompt):
            await release.wait()
            return "A cat driving a convertible through neon rain"

        media_client = make_media_client()
        media_client.enhance_prompt.side_effect = slow_enhance
        orchestrator = GenerationOrchestrator(
            media_client=media_client,
            video_poller=VideoJobPoller(config=config, client_factory=lambda key: sdk),
            history=HistoryStore(tmp_path / "history.json"),
            on_change=recorder,
        )
        prepare(orchestrator, recorder, "a cat driving a car", tab=MediaKind.VIDEO, enhance=True)

        task = asyncio.create_task(orchestrator.generate())
        await asyncio.sleep(0)
        assert orchestrator.status == LoadingStatus.ENHANCING
        assert orchestrator.cancel() is True
        release.set()
        await task

        assert orchestrator.status == LoadingStatus.ERROR
        assert orchestrator.snapshot().loading.message == str(GenerationCancelled())
        sdk.aio.models.generate_videos.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_image_requests_cannot_be_cancelled(self, orchestrator, recorder, media_client):
        """Test that cancel() reports nothing to cancel on the image tab."""
        release = asyncio.Event()

        async def slow_image(*args):
            await release.wait()
            return IMAGE_URL

        media_client.generate_image.side_effect = slow_image
        prepare(orchestrator, recorder, "a red fox")

        task = asyncio.create_task(orchestrator.generate())
        await asyncio.sleep(0)
        assert orchestrator.status == LoadingStatus.GENERATING
        assert orchestrator.cancel() is False
        release.set()

        assert await task is not None
        assert orchestrator.status == LoadingStatus.SUCCESS


class TestStateCallbacks:
    """Test sync and async state change callbacks."""

    @pytest.mark.asyncio
    async def test_async_callback_sees_every_transition(self, media_client, video_poller, history_path):
        """Test that a coroutine callback is awaited for each snapshot, in order."""
        statuses = []

        async def on_change(snapshot):
            await asyncio.sleep(0)
            statuses.append(snapshot.status)

        orchestrator = GenerationOrchestrator(
            media_client=media_client,
            video_poller=video_poller,
            history=HistoryStore(history_path),
            on_change=on_change,
        )
        orchestrator.set_enhance_enabled(True)
        orchestrator.set_prompt("a red fox")

        with warnings.catch_warnings():
            warnings.simplefilter("error", RuntimeWarning)
            assert await orchestrator.generate() is not None

        assert statuses == [
            LoadingStatus.IDLE,
            LoadingStatus.IDLE,
            LoadingStatus.ENHANCING,
            LoadingStatus.GENERATING,
            LoadingStatus.SUCCESS,
        ]

    @pytest.mark.asyncio
    async def test_failing_async_callback_is_ignored(self, media_client, video_poller, history_path):
        """Test that an async callback error does not break generation."""

        async def on_change(snapshot):
            raise RuntimeError("render failed")

        orchestrator = GenerationOrchestrator(
            media_client=media_client,
            video_poller=video_poller,
            history=HistoryStore(history_path),
            on_change=on_change,
        )
        orchestrator.set_prompt("a red fox")

        assert await orchestrator.generate() is not None
        assert orchestrator.status == LoadingStatus.SUCCESS

    def test_snapshot_flags(self, orchestrator):
        """Test can_generate and can_use_as_reference on snapshots."""
        assert not orchestrator.snapshot().can_generate

        orchestrator.set_prompt("   ")
        assert not orchestrator.snapshot().can_generate

        orchestrator.set_prompt("a red fox")
        assert orchestrator.snapshot().can_generate
        assert not orchestrator.snapshot().can_use_as_reference

        orchestrator.restore_from_history(
            GeneratedItem(id="1", url=IMAGE_URL, prompt="p", timestamp=1, type=MediaKind.IMAGE)
        )
        assert orchestrator.snapshot().can_use_as_reference


class TestAuxiliaryOperations:
    """Test operations that make no remote calls."""

    @pytest.mark.asyncio
    async def test_use_image_as_reference(self, orchestrator, recorder):
        """Test that the displayed image becomes the reference and status resets."""
        prepare(orchestrator, recorder, "a red fox")
        item = await orchestrator.generate()

        assert orchestrator.use_as_reference() is True

        snapshot = orchestrator.snapshot()
        assert snapshot.reference_image.data == item.url
        assert snapshot.reference_image.mime_type == "image/png"
        assert snapshot.active_item is None
        assert snapshot.status == LoadingStatus.IDLE

    def test_use_as_reference_keeps_image_type(self, orchestrator):
        """Test that the reference takes the media type of the displayed image."""
        jpeg_url = "data:image/jpeg;base64," + base64.b64encode(b"JPEG").decode()
        orchestrator.restore_from_history(
            GeneratedItem(id="1", url=jpeg_url, prompt="p", timestamp=1, type=MediaKind.IMAGE)
        )

        assert orchestrator.use_as_reference() is True
        assert orchestrator.snapshot().reference_image.mime_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_use_video_as_reference_is_noop(self, orchestrator, recorder):
        """Scenario E: a displayed video cannot become the reference."""
        prepare(orchestrator, recorder, "a cat driving a car", tab=MediaKind.VIDEO)
        orchestrator.set_reference_image("data:image/jpeg;base64,AAAA", "image/jpeg")
        item = await orchestrator.generate()
        before = orchestrator.snapshot()

        assert orchestrator.use_as_reference() is False

        after = orchestrator.snapshot()
        assert after.reference_image == before.reference_image
        assert after.status == LoadingStatus.SUCCESS
        assert after.active_item == item

    def test_use_as_reference_without_selection(self, orchestrator):
        assert orchestrator.use_as_reference() is False
        assert orchestrator.snapshot().reference_image is None

    @pytest.mark.asyncio
    async def test_restore_is_idempotent(self, orchestrator, recorder):
        """Test that restoring twice yields the same observable state."""
        prepare(orchestrator, recorder, "a cat driving a car", tab=MediaKind.VIDEO)
        video = await orchestrator.generate()
        prepare(orchestrator, recorder, "a red fox", tab=MediaKind.IMAGE)
        await orchestrator.generate()

        orchestrator.restore_from_history(video)
        first = orchestrator.snapshot()
        orchestrator.restore_from_history(video)
        second = orchestrator.snapshot()

        assert first == second
        assert second.active_item == video
        assert second.prompt == "a cat driving a car"
        assert second.active_tab == MediaKind.VIDEO
        assert second.status == LoadingStatus.IDLE
        assert len(second.history) == 2

    @pytest.mark.asyncio
    async def test_clear_history(self, orchestrator, recorder, history_path):
        """Scenario F: clearing empties memory and the next load."""
        prepare(orchestrator, recorder, "a red fox")
        await orchestrator.generate()
        await orchestrator.generate()

        assert orchestrator.clear_history(confirm=lambda: True) is True

        assert orchestrator.snapshot().history == ()
        assert HistoryStore(history_path).load() == ()

    @pytest.mark.asyncio
    async def test_clear_history_needs_confirmation(self, orchestrator, recorder):
        """Test that declining the confirmation keeps the history."""
        prepare(orchestrator, recorder, "a red fox")
        await orchestrator.generate()

        assert orchestrator.clear_history(confirm=lambda: False) is False
        assert len(orchestrator.history) == 1

    @pytest.mark.asyncio
    async def test_download_active_item(self, orchestrator, recorder, tmp_path):
        """Test that the displayed image is saved under a generated name."""
        prepare(orchestrator, recorder, "a red fox")
        await orchestrator.generate()

        path = await orchestrator.download(tmp_path / "out")

        assert path.name.startswith("nano-banana-image-")
        assert path.suffix == ".png"
        assert path.read_bytes() == b"PNG"

    @pytest.mark.asyncio
    async def test_download_without_selection(self, orchestrator, tmp_path):
        assert await orchestrator.download(tmp_path) is None


class TestBlobLifetime:
    """Test that video payloads are released once unreachable."""

    @pytest.mark.asyncio
    async def test_evicted_video_is_revoked(self, media_client, video_poller, blob_store, tmp_path):
        """Test that a video pushed out of history is deleted once not displayed."""
        orchestrator = GenerationOrchestrator(
            media_client=media_client,
            video_poller=video_poller,
            history=HistoryStore(tmp_path / "history.json", limit=2),
            blob_store=blob_store,
        )
        orchestrator.set_active_tab(MediaKind.VIDEO)
        orchestrator.set_prompt("a cat driving a car")

        first = await orchestrator.generate()
        second = await orchestrator.generate()
        third = await orchestrator.generate()

        assert not blob_store.exists(first.url)
        assert blob_store.exists(second.url)
        assert blob_store.exists(third.url)

    @pytest.mark.asyncio
    async def test_clear_keeps_displayed_video(self, orchestrator, recorder, blob_store):
        """Test that clearing history keeps the video on display until replaced."""
        prepare(orchestrator, recorder, "a cat driving a car", tab=MediaKind.VIDEO)
        older = await orchestrator.generate()
        shown = await orchestrator.generate()

        orchestrator.clear_history()

        assert not blob_store.exists(older.url)
        assert blob_store.exists(shown.url)

        orchestrator.set_active_tab(MediaKind.IMAGE)
        await orchestrator.generate()

        assert not blob_store.exists(shown.url)

    def test_items_are_immutable(self):
        item = GeneratedItem(id="1", url=IMAGE_URL, prompt="p", timestamp=1, type=MediaKind.IMAGE)

        with pytest.raises(ValidationError):
            item.prompt = "changed"

    def test_item_id_format(self):
        """Test that ids are the millisecond timestamp plus a base-36 suffix."""
        item_id = new_item_id(1_718_000_000_000)

        assert item_id.startswith("1718000000000")
        suffix = item_id[len("1718000000000"):]
        assert len(suffix) == 9
        assert set(suffix) <= set(string.digits + string.ascii_lowercase)
