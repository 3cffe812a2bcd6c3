"""Domain exceptions raised by services and mapped to HTTP responses in the API layer."""
from __future__ import annotations

from typing import Dict, Optional


class LinkdashError(Exception):
    """Base class for all service-level errors."""


class EventSourceError(LinkdashError):
    """The click event source could not be read (network, auth or query failure)."""


class LinkValidationError(LinkdashError):
    """Link input rejected before any write. ``errors`` maps field -> reason."""

    def __init__(self, errors: Dict[str, str]):
        self.errors = errors
        fields = ", ".join(sorted(errors))
        super().__init__(f"Invalid link input: {fields}")


class LinkNotFoundError(LinkdashError):
    def __init__(self, link_id: int, user_id: Optional[int] = None):
        self.link_id = link_id
        self.user_id = user_id
        super().__init__(f"Link {link_id} not found")


class ShortCodeExhaustedError(LinkdashError):
    """No free short code found within the configured number of attempts."""


__all__ = [
    "LinkdashError",
    "EventSourceError",
    "LinkValidationError",
    "LinkNotFoundError",
    "ShortCodeExhaustedError",
]
