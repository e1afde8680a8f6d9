"""Storage abstractions for the onboarding event journal."""

from .chroma import ChromaEvent, ChromaStore, ChromaUnavailableError

__all__ = [
    "ChromaEvent",
    "ChromaStore",
    "ChromaUnavailableError",
]
