"""
Nano Banana Studio CLI Tools

Terminal presentation for the studio:
- status_display: renders state transitions and history listings
"""

from .status_display import StatusPrinter, format_snapshot, print_history

__all__ = ["StatusPrinter", "format_snapshot", "print_history"]
