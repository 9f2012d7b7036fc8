"""
Terminal rendering of studio state.

Used as the orchestrator's on_change callback: every status transition is
printed once, with colour and an icon, and history listings are formatted as
a compact table.
"""

import sys
from datetime import datetime
from typing import Optional, TextIO

from services.orchestrator.state import GeneratedItem, LoadingStatus, MediaKind, StudioSnapshot


# ANSI color codes
class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"


def colored(text: str, color: str) -> str:
    """Apply color to text."""
    return f"{color}{text}{Colors.RESET}"


STATUS_STYLE = {
    LoadingStatus.IDLE: ("•", Colors.DIM),
    LoadingStatus.ENHANCING: ("🪄", Colors.MAGENTA),
    LoadingStatus.GENERATING: ("⏳", Colors.CYAN),
    LoadingStatus.SUCCESS: ("✅", Colors.GREEN),
    LoadingStatus.ERROR: ("🔴", Colors.RED),
}

KIND_ICONS = {
    MediaKind.IMAGE: "🖼️",
    MediaKind.VIDEO: "🎬",
}


def format_timestamp(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def format_item(item: GeneratedItem, prompt_width: int = 60) -> str:
    prompt = item.prompt if len(item.prompt) <= prompt_width else item.prompt[: prompt_width - 3] + "..."
    return (
        f"{KIND_ICONS[item.type]} {colored(item.id, Colors.BOLD)} "
        f"{colored(format_timestamp(item.timestamp), Colors.DIM)} {prompt}"
    )


def format_snapshot(snapshot: StudioSnapshot) -> Optional[str]:
    """Describe a snapshot's loading state. None for a silent idle state."""
    status = snapshot.loading.status
    icon, color = STATUS_STYLE[status]

    if status == LoadingStatus.ENHANCING:
        return f"{icon} {colored(snapshot.loading.message or 'Enhancing prompt...', color)}"

    if status == LoadingStatus.GENERATING:
        lines = [f"{icon} {colored(snapshot.loading.message or 'Generating...', color)}"]
        if snapshot.enhance_enabled:
            lines.append(colored(f"    └─ {snapshot.prompt}", Colors.DIM))
        return "\n".join(lines)

    if status == LoadingStatus.SUCCESS and snapshot.active_item is not None:
        return f"{icon} {colored('Done', color)}  {format_item(snapshot.active_item)}"

    if status == LoadingStatus.ERROR:
        return f"{icon} {colored(snapshot.loading.message or 'Something went wrong.', color)}"

    return None


class StatusPrinter:
    """
    Prints each status transition once.

    Usage:
        printer = StatusPrinter()
        orchestrator = create_orchestrator(on_change=printer)
    """

    def __init__(self, stream: TextIO = sys.stdout):
        self.stream = stream
        self._last: Optional[tuple] = None

    def __call__(self, snapshot: StudioSnapshot):
        key = (snapshot.loading, snapshot.active_item.id if snapshot.active_item else None)
        if key == self._last:
            return
        self._last = key

        line = format_snapshot(snapshot)
        if line:
            print(line, file=self.stream, flush=True)


def print_history(items: tuple[GeneratedItem, ...], limit: Optional[int] = None, stream: TextIO = sys.stdout):
    if not items:
        print(colored("History is empty.", Colors.DIM), file=stream)
        return

    shown = items[:limit] if limit else items
    print(colored(f"═══ History ({len(items)} items) ═══", Colors.CYAN), file=stream)
    for item in shown:
        print(format_item(item), file=stream)
