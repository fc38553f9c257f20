"""Error types shared by the scheduler and the cache.

Only selection-phase failures escape a tick; everything else is converted
into a per-schedule result.
"""

from __future__ import annotations

from typing import Literal

DispatchErrorKind = Literal["engine", "exception", "timeout"]


class CadenceError(Exception):
    """Base class for cadence errors."""


class ValidationError(CadenceError):
    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class NotFoundError(CadenceError):
    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")


class DispatchError(CadenceError):
    def __init__(self, message: str, kind: DispatchErrorKind = "engine") -> None:
        self.kind = kind
        super().__init__(message)


class NotificationTransportError(CadenceError):
    def __init__(self, recipient: str, message: str) -> None:
        self.recipient = recipient
        super().__init__(f"Failed to notify {recipient}: {message}")


class StoreError(CadenceError):
    """A persistence read or write failed."""
