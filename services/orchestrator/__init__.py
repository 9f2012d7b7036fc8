"""
Generation Orchestrator Service

Client-side state machine for the studio:
- Optional prompt enhancement, then image or video generation
- Single loading state, active selection and history ownership
- Read-only snapshots for the presentation layer
"""

from .state import (
    GeneratedItem,
    LoadingState,
    LoadingStatus,
    MediaKind,
    ReferenceImage,
    StudioSnapshot,
)
from .controller import GenerationOrchestrator, create_orchestrator

__all__ = [
    "GeneratedItem",
    "LoadingState",
    "LoadingStatus",
    "MediaKind",
    "ReferenceImage",
    "StudioSnapshot",
    "GenerationOrchestrator",
    "create_orchestrator",
]
