#!/usr/bin/env python3
"""
Nano Banana Studio - Main Entry Point

Generate images and short videos from a prompt, with an optional reference
image, and keep a local history of the results.

Usage:
    # Generate an image
    python main.py generate --prompt "a red fox in the snow"

    # Edit an image, improving the prompt first
    python main.py generate -p "make it night time" -r fox.png --enhance

    # Generate a video (Ctrl+C cancels the running job)
    python main.py generate -p "a cat driving a car in a neon city" --video

    # Browse, restore and clear history
    python main.py history
    python main.py restore 1718000000000a1b2c3d4
    python main.py clear-history
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from dotenv import load_dotenv

# Configure logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("nanobanana")


def confirm(question: str) -> bool:
    try:
        return input(f"{question} [y/N] ").strip().lower() in ("y", "yes")
    except EOFError:
        return False


async def generate(
    prompt: str,
    video: bool = False,
    reference_path: Optional[str] = None,
    enhance: bool = False,
    output_dir: str = "./output",
) -> bool:
    """
    Run one generation and save the result.

    Args:
        prompt: Text prompt
        video: Generate a video instead of an image
        reference_path: Optional image used for editing or as the first frame
        enhance: Improve the prompt before generating
        output_dir: Directory the result is saved to

    Returns:
        True on success
    """
    from cli.status_display import StatusPrinter
    from core.config import get_config
    from services.media.data_urls import file_to_data_url
    from services.orchestrator import MediaKind, create_orchestrator
    from services.video_generation import PromptKeySelector

    config = get_config()
    for issue in config.validate():
        logger.warning(issue)

    reference = None
    if reference_path:
        try:
            reference = file_to_data_url(reference_path)
        except (OSError, ValueError) as e:
            print(f"Cannot read reference image: {e}")
            return False

    orchestrator = create_orchestrator(
        config=config,
        key_selector=PromptKeySelector(initial_key=config.api.gemini_api_key),
        on_change=StatusPrinter(),
    )

    orchestrator.set_active_tab(MediaKind.VIDEO if video else MediaKind.IMAGE)
    orchestrator.set_enhance_enabled(enhance)
    orchestrator.set_prompt(prompt)

    if reference:
        data_url, mime_type = reference
        orchestrator.set_reference_image(data_url, mime_type)
        logger.info(f"Reference image: {reference_path} ({mime_type})")

    if not orchestrator.snapshot().can_generate:
        print("Nothing to generate: the prompt is empty.")
        return False

    # Ctrl+C cancels a video job; image requests keep the default behaviour
    signals = (signal.SIGTERM, signal.SIGINT) if video else ()
    loop = asyncio.get_running_loop()
    for sig in signals:
        loop.add_signal_handler(sig, orchestrator.cancel)

    try:
        item = await orchestrator.generate()
    finally:
        for sig in signals:
            loop.remove_signal_handler(sig)
        await orchestrator.video_poller.close()

    if item is None:
        return False

    path = await orchestrator.download(output_dir)
    print(f"Saved to {path}")
    return True


def show_history(limit: Optional[int] = None):
    from cli.status_display import print_history
    from core.config import get_config
    from services.history import HistoryStore

    storage = get_config().storage
    history = HistoryStore(storage.history_path, limit=storage.history_limit)
    print_history(history.load(), limit=limit)


async def restore(item_id: str, output_dir: str = "./output") -> bool:
    """Restore a history item and save its media again."""
    from core.config import get_config
    from services.orchestrator import create_orchestrator

    orchestrator = create_orchestrator(config=get_config())
    item = orchestrator.history.get(item_id)
    if item is None:
        print(f"No history item with id {item_id}")
        return False

    orchestrator.restore_from_history(item)
    print(f"Prompt: {orchestrator.snapshot().prompt}")

    try:
        path = await orchestrator.download(output_dir)
    except FileNotFoundError as e:
        print(f"Cannot export {item.type.value}: {e}")
        return False

    print(f"Saved to {path}")
    return True


def clear_history(assume_yes: bool = False) -> bool:
    from core.config import get_config
    from services.orchestrator import create_orchestrator

    orchestrator = create_orchestrator(config=get_config())
    ask = None if assume_yes else (lambda: confirm("Are you sure you want to clear your history?"))
    cleared = orchestrator.clear_history(confirm=ask)
    print("History cleared." if cleared else "History kept.")
    return cleared


def main():
    load_dotenv()

    parser = argparse.ArgumentParser(
        description="Nano Banana Studio - AI image and video generation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Create an image
    python main.py generate --prompt "a red fox"

    # Edit an existing image
    python main.py generate -p "add falling snow" --reference fox.png

    # Animate an image into a video
    python main.py generate -p "slow cinematic pan" -r fox.png --video

    # List history
    python main.py history --limit 5
        """,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show info logs")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Generate command
    gen_parser = subparsers.add_parser("generate", help="Generate an image or video")
    gen_parser.add_argument("--prompt", "-p", required=True, help="Prompt text")
    gen_parser.add_argument("--video", action="store_true", help="Generate a video instead of an image")
    gen_parser.add_argument("--reference", "-r", help="Reference image file")
    gen_parser.add_argument("--enhance", "-e", action="store_true", help="Enhance the prompt first")
    gen_parser.add_argument("--output", "-o", default="./output", help="Output directory")

    # History command
    hist_parser = subparsers.add_parser("history", help="List generation history")
    hist_parser.add_argument("--limit", "-n", type=int, help="Show only the newest N items")

    # Restore command
    restore_parser = subparsers.add_parser("restore", help="Restore and export a history item")
    restore_parser.add_argument("item_id", help="History item id")
    restore_parser.add_argument("--output", "-o", default="./output", help="Output directory")

    # Clear command
    clear_parser = subparsers.add_parser("clear-history", help="Delete all history")
    clear_parser.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.INFO)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Run appropriate command
    if args.command == "generate":
        ok = asyncio.run(
            generate(
                prompt=args.prompt,
                video=args.video,
                reference_path=args.reference,
                enhance=args.enhance,
                output_dir=args.output,
            )
        )
        sys.exit(0 if ok else 1)

    elif args.command == "history":
        show_history(args.limit)

    elif args.command == "restore":
        sys.exit(0 if asyncio.run(restore(args.item_id, args.output)) else 1)

    elif args.command == "clear-history":
        clear_history(args.yes)


if __name__ == "__main__":
    main()
