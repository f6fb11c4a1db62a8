"""Exceptions raised by the user store."""


class UserStoreError(Exception):
    """Base exception for user store errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(UserStoreError):
    """Raised when the client did not supply usable field values."""

    def __init__(self, message: str = "Missing fields"):
        super().__init__(message)


class NotFoundError(UserStoreError):
    """Raised when no live user matches the requested id."""

    def __init__(self, message: str = "User not found"):
        super().__init__(message)
