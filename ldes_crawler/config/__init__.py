"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import EventStreamConfig, GlobalConfig, OutputRepresentation, StreamConfig

__all__ = [
    "ConfigLocator",
    "ConfigRepository",
    "EventStreamConfig",
    "GlobalConfig",
    "OutputRepresentation",
    "StreamConfig",
]
