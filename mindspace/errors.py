"""Exception hierarchy for mindspace.

Every error raised by the tree model, the map registry and the persistence
gateway derives from MindspaceError. The workspace controller catches them at
its public surface and turns them into no-ops, so none of them is fatal.
"""

from typing import Any, Optional


class MindspaceError(Exception):
    """Base exception for all mindspace errors."""
    pass


class ValidationError(MindspaceError):
    """Raised when user input is rejected (e.g. an empty map name)."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        super().__init__(message)
        self.field = field
        self.value = value


class LastMapError(MindspaceError):
    """Raised when deleting the only remaining map."""

    def __init__(self, map_id: int):
        super().__init__(f"Map {map_id} is the last map and cannot be deleted")
        self.map_id = map_id


class InvalidOperation(MindspaceError):
    """Raised for structurally disallowed actions."""

    def __init__(self, operation: str, reason: str):
        super().__init__(f"Cannot {operation}: {reason}")
        self.operation = operation
        self.reason = reason


class CorruptState(MindspaceError):
    """Raised when a persisted value cannot be parsed."""

    def __init__(self, key: str, reason: Optional[str] = None):
        message = f"Persisted value for '{key}' is corrupt"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.key = key
        self.reason = reason
