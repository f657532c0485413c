"""
Engine errors.

Every operation validates before it writes, so any of these leaves the targeted
record untouched. The HTTP layer maps them to status codes in main.py.
"""


class BracketError(Exception):
    """Base class for all bracket engine errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BracketError):
    """Invalid input: missing field, bad size, duplicate seed or stage number."""


class StateError(BracketError):
    """The operation is not allowed in the current lifecycle state."""


class ResultError(BracketError):
    """A result is inconsistent with the format or with best-of arithmetic."""


class NotFoundError(BracketError):
    """A referenced entity does not exist."""
