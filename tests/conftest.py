from __future__ import annotations

import io

import pytest

from sender_control.audit import InMemoryAuditStore, JsonAuditLogger
from sender_control.config import AuthorizationSettings, TenantConfig
from sender_control.fakes import FakeDirectoryService, FakeMailboxAdminService

APP_ID = "9f1c2b4e-0000-4000-8000-00000000a001"
OBJECT_ID = "5d3e7a10-0000-4000-8000-00000000b002"
MAILBOXES = ["alice@contoso.com", "bob@contoso.com", "carol@contoso.com"]
OUTSIDER = "mallory@contoso.com"


@pytest.fixture
def audit_store() -> InMemoryAuditStore:
    return InMemoryAuditStore()


@pytest.fixture
def audit(audit_store: InMemoryAuditStore) -> JsonAuditLogger:
    return JsonAuditLogger(name="sender_control.tests", store=audit_store, stream=io.StringIO())


@pytest.fixture
def mailbox_service() -> FakeMailboxAdminService:
    return FakeMailboxAdminService(mailboxes=[*MAILBOXES, OUTSIDER])


@pytest.fixture
def directory() -> FakeDirectoryService:
    return FakeDirectoryService()


@pytest.fixture
def settings() -> AuthorizationSettings:
    return AuthorizationSettings()


@pytest.fixture
def tenant_config() -> TenantConfig:
    return TenantConfig(
        tenant_id="11111111-2222-3333-4444-555555555555",
        organization="contoso.onmicrosoft.com",
        auth={"type": "client_secret", "client_id": "client", "client_secret": {"value": "secret"}},
    )


class StubAuthenticator:
    def __init__(self, token: str = "token") -> None:
        self.token = token
        self.calls = 0

    def acquire_token(self) -> str:
        self.calls += 1
        return self.token


@pytest.fixture
def authenticator() -> StubAuthenticator:
    return StubAuthenticator()
