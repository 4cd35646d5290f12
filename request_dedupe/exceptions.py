"""Exceptions raised by the deduplicator itself.

Producer failures are never wrapped; they reach callers unchanged.
"""


class InvalidArgumentError(ValueError):
    """Raised when a key is missing, empty or not a string."""

    def __init__(self, message: str = "Key must be a non-empty string"):
        super().__init__(message)


__all__ = ["InvalidArgumentError"]
