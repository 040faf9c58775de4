from __future__ import annotations

from typing import Optional


class SenderControlError(RuntimeError):
    """Base exception for sender control operations."""


class ConfigurationError(SenderControlError):
    """Raised when the configuration file is missing or invalid."""


class ConnectionFailedError(SenderControlError):
    """Raised when a session with a remote administrative service cannot be established."""


class RemoteServiceError(SenderControlError):
    """Raised when a remote administrative API rejects a call."""

    def __init__(self, status_code: int, code: str, message: str, command: Optional[str] = None) -> None:
        prefix = f"{command}: " if command else ""
        super().__init__(f"{prefix}{status_code}: {code} - {message}")
        self.status_code = status_code
        self.code = code
        self.message = message
        self.command = command


class ResourceNotFoundError(RemoteServiceError):
    """Raised when an expected remote resource does not exist."""

    def __init__(self, message: str, command: Optional[str] = None, status_code: int = 404) -> None:
        super().__init__(status_code, "NotFound", message, command=command)
