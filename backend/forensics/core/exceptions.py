"""
Forensics Exceptions Module

Custom exceptions for the order-flow forensics engine.
"""

from typing import Any, Optional


class ForensicsError(Exception):
    """Base exception for forensics errors."""
    pass


class ParseError(ForensicsError):
    """Raised when a trade or distribution field cannot be normalized."""
    def __init__(self, field: str, value: Any, index: Optional[int] = None, reason: str = ""):
        self.field = field
        self.value = value
        self.index = index
        location = f"record {index}" if index is not None else "input"
        self.message = f"Malformed {field} {value!r} at {location}"
        if reason:
            self.message += f": {reason}"
        super().__init__(self.message)


class ConfigurationError(ForensicsError):
    """Raised when a threshold or builder parameter is out of range."""
    def __init__(self, name: str, value: Any, message: str = None):
        self.name = name
        self.value = value
        self.message = message or f"{name} must be positive, got {value!r}"
        super().__init__(self.message)
