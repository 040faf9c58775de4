"""Capabilities the managers need from the two remote administrative services."""
from __future__ import annotations

from typing import List, Optional, Protocol

from .models import (
    ApplicationIdentity,
    ManagementScope,
    PermissionGrant,
    PrincipalPointer,
    RoleAssignment,
    SendAsGrant,
    ServicePrincipal,
    SignInAudience,
)


class DirectoryService(Protocol):
    """Directory operations used to register the sending application."""

    def connect(self) -> None:
        ...

    def get_tenant_id(self) -> str:
        ...

    def create_application(
        self, display_name: str, sign_in_audience: SignInAudience, public_client: bool
    ) -> ApplicationIdentity:
        ...

    def create_service_principal(self, app_id: str) -> ServicePrincipal:
        ...

    def find_service_principal(self, app_id: str) -> Optional[ServicePrincipal]:
        ...

    def list_app_role_assignments(self, service_principal_id: str) -> List[PermissionGrant]:
        ...

    def create_app_role_assignment(self, grant: PermissionGrant) -> PermissionGrant:
        ...


class MailboxAdminService(Protocol):
    """Mailbox administration operations used to scope the application's send rights."""

    def connect(self) -> None:
        ...

    def set_mailbox_attribute(self, mailbox: str, attribute: str, value: Optional[str]) -> None:
        ...

    def get_mailbox_attribute(self, mailbox: str, attribute: str) -> Optional[str]:
        ...

    def list_management_scopes(self) -> List[ManagementScope]:
        ...

    def create_management_scope(self, name: str, recipient_filter: str) -> ManagementScope:
        ...

    def remove_management_scope(self, name: str) -> None:
        ...

    def list_service_principals(self) -> List[PrincipalPointer]:
        ...

    def create_service_principal(self, app_id: str, object_id: str, display_name: str) -> PrincipalPointer:
        ...

    def remove_service_principal(self, identity: str) -> None:
        ...

    def find_management_role(self, name: str) -> Optional[str]:
        ...

    def list_role_assignments(self, role_assignee: str) -> List[RoleAssignment]:
        ...

    def create_role_assignment(self, app: str, role: str, scope: str) -> RoleAssignment:
        ...

    def remove_role_assignment(self, name: str) -> None:
        ...

    def list_recipient_permissions(self, target: str, trustee: str) -> List[SendAsGrant]:
        ...

    def add_send_as(self, target: str, trustee: str) -> None:
        ...

    def remove_send_as(self, target: str, trustee: str) -> None:
        ...

    def test_authorization(self, principal: str, mailbox: str) -> bool:
        ...
