"""Exception types shared by the Password Trainer entry points."""

from __future__ import annotations


class StartupValidationError(RuntimeError):
    """Configuration or secret artifacts are not fit for the requested mode."""

    def __init__(self, messages: list[str]) -> None:
        super().__init__("; ".join(messages))
        self.messages = list(messages)


class InitializationError(RuntimeError):
    """Operator input was missing or unusable during secret initialization."""
