"""Test helpers for use case-based testing."""

from .sender_actor import SenderActor

__all__ = [
    "SenderActor",
]
