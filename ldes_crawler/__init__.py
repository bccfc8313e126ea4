"""Continuously polling client for Linked Data Event Streams."""

from .config import EventStreamConfig, OutputRepresentation
from .errors import FetchError, LdesCrawlerError, ParseError, StateExportError
from .stream import Collaborators, EventStream, StreamCheckpoint, StreamState

__all__ = [
    "Collaborators",
    "EventStream",
    "EventStreamConfig",
    "FetchError",
    "LdesCrawlerError",
    "OutputRepresentation",
    "ParseError",
    "StateExportError",
    "StreamCheckpoint",
    "StreamState",
]

__version__ = "0.1.0"
