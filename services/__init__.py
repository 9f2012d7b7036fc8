"""
Nano Banana Studio Services

Core services behind the studio:
- orchestrator: generation state machine and studio state
- media: prompt enhancement and image generation
- video_generation: long-running video jobs and local blob storage
- history: persisted, bounded generation history
"""

from .orchestrator import (
    GenerationOrchestrator,
    create_orchestrator,
    GeneratedItem,
    LoadingStatus,
    MediaKind,
)

__all__ = [
    "GenerationOrchestrator",
    "create_orchestrator",
    "GeneratedItem",
    "LoadingStatus",
    "MediaKind",
]
