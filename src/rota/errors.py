"""Error taxonomy for the shift series engine.

All errors bubble to the caller uncaught; the engine performs no rollback.
"""

from __future__ import annotations

from typing import Optional


class RotaError(RuntimeError):
    """Base class for every error raised by rota."""


class ValidationError(RotaError):
    """Malformed input, rejected before any store call."""

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class StaleWorkingSetError(ValidationError):
    """A previous store failure left the working set untrusted; reload first."""

    def __init__(self) -> None:
        super().__init__("working set is stale after a store failure; reload it before mutating")


class NotFoundError(RotaError):
    """Target shift is neither in the working set nor in the store."""

    def __init__(self, shift_id: str) -> None:
        super().__init__(f"shift {shift_id} not found")
        self.shift_id = shift_id


class StoreError(RotaError):
    """Any failure reported by the persistence collaborator."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation

    @classmethod
    def missing(cls, shift_id: str) -> StoreError:
        """A shift read at the start of a mutation was gone when it was written."""
        return cls("update_shift", f"shift {shift_id} is no longer in the store")
