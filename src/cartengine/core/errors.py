"""
Exceptions raised by the cart engine.
"""


class CartEngineError(Exception):
    """Base exception for cart engine errors."""


class CorruptPersistedState(CartEngineError):
    """A persisted cart or promotion blob could not be decoded."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Corrupt persisted state in '{key}': {reason}")
