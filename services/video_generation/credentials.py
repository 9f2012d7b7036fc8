"""
API key selection capability.

Video generation needs a key the user has explicitly chosen. Hosts that can
ask the user for one provide a KeySelector; hosts that cannot simply pass
None to the poller and the configured key is used as-is.
"""

import asyncio
import getpass
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class KeySelector(ABC):
    """Checks for a selected API key and asks the user to pick one."""

    @property
    @abstractmethod
    def api_key(self) -> str:
        """The currently selected key ("" when none)."""

    async def has_selected_api_key(self) -> bool:
        return bool(self.api_key)

    @abstractmethod
    async def open_select_key(self) -> bool:
        """Ask the user to select a key. Returns True if one was selected."""


class StaticKeySelector(KeySelector):
    """A key fixed at construction time. Cannot prompt for another."""

    def __init__(self, api_key: str = ""):
        self._api_key = api_key

    @property
    def api_key(self) -> str:
        return self._api_key

    async def open_select_key(self) -> bool:
        return False


class PromptKeySelector(KeySelector):
    """
    Asks for a key on the terminal when none is configured.

    Usage:
        selector = PromptKeySelector(initial_key=config.api.gemini_api_key)
    """

    def __init__(
        self,
        initial_key: str = "",
        prompt: Callable[[str], str] = getpass.getpass,
    ):
        self._api_key = initial_key
        self._prompt = prompt

    @property
    def api_key(self) -> str:
        return self._api_key

    async def open_select_key(self) -> bool:
        try:
            entered = await asyncio.to_thread(self._prompt, "Gemini API key (required for video): ")
        except (EOFError, KeyboardInterrupt):
            logger.warning("API key selection aborted")
            return False

        entered = (entered or "").strip()
        if not entered:
            return False

        self._api_key = entered
        return True


def resolve_api_key(selector: Optional[KeySelector], fallback: str) -> str:
    if selector is not None and selector.api_key:
        return selector.api_key
    return fallback
