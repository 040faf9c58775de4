"""Provisioning and mailbox-scoped authorization for a mail-sending application.

The package registers the application in the directory, then confines its
send rights to a tagged set of mailboxes through a management scope, a
service principal pointer and a scoped role assignment, with an exact
rollback of the latter.
"""
from __future__ import annotations

from .errors import (
    ConfigurationError,
    ConnectionFailedError,
    RemoteServiceError,
    ResourceNotFoundError,
    SenderControlError,
)
from .orchestrator import AuthorizationOrchestrator, AuthorizationRequest
from .provisioning import DirectoryProvisioner

__all__ = [
    "AuthorizationOrchestrator",
    "AuthorizationRequest",
    "ConfigurationError",
    "ConnectionFailedError",
    "DirectoryProvisioner",
    "RemoteServiceError",
    "ResourceNotFoundError",
    "SenderControlError",
]
