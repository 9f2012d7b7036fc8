"""
Nano Banana Studio Core Components

Provides foundational infrastructure shared by all services:
- Configuration loaded from the environment
- Two-variant outcomes for fail-open and fail-closed remote calls
"""

from .config import Config, get_config
from .outcome import Propagated, Recovered, propagate, recover

__all__ = ["Config", "get_config", "Propagated", "Recovered", "propagate", "recover"]
