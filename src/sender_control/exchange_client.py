"""Exchange Online admin API client.

Cmdlets are executed through the REST ``InvokeCommand`` endpoint that the
ExchangeOnlineManagement module itself uses, so no PowerShell host is needed.
Lookups treat "couldn't be found" answers as absence; every other error is
raised to the caller.
"""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

import httpx

from .audit import JsonAuditLogger
from .auth import TokenAuthenticator
from .config import TenantConfig
from .errors import RemoteServiceError, ResourceNotFoundError
from .models import (
    SEND_AS_RIGHT,
    ManagementScope,
    PrincipalPointer,
    RoleAssignment,
    SendAsGrant,
)
from .rest_client import RestClient

SYSTEM_ANCHOR_MAILBOX = "SystemMailbox{bb558c35-97f1-4cb9-8ff7-d53741dc928c}"
_NOT_FOUND = re.compile(r"couldn't be found|could not be found|doesn't exist|does not exist", re.IGNORECASE)


class ExchangeAdminClient(RestClient):
    """Mailbox administration operations for one tenant."""

    service = "exchange"

    def __init__(
        self,
        tenant_config: TenantConfig,
        authenticator: TokenAuthenticator,
        audit_logger: JsonAuditLogger,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(
            tenant_config,
            authenticator,
            audit_logger,
            base_url=f"{tenant_config.exchange_base_url.rstrip('/')}/adminapi/beta/{tenant_config.tenant_id}",
            transport=transport,
        )

    def invoke(self, cmdlet: str, **parameters: Any) -> List[Dict[str, Any]]:
        """Run a cmdlet and return every result row, following paging links."""
        headers: Dict[str, str] = {}
        if self.tenant_config.organization:
            headers["X-AnchorMailbox"] = f"UPN:{SYSTEM_ANCHOR_MAILBOX}@{self.tenant_config.organization}"
        body = {"CmdletInput": {"CmdletName": cmdlet, "Parameters": parameters}}

        try:
            response = self.request(
                "POST", f"{self.base_url}/InvokeCommand", command=cmdlet, json=body, headers=dict(headers)
            )
            payload = self._json(response)
            rows: List[Dict[str, Any]] = list(payload.get("value") or [])
            next_link = payload.get("@odata.nextLink")
            while next_link:
                response = self.request("POST", next_link, command=cmdlet, json=body, headers=dict(headers))
                payload = self._json(response)
                rows.extend(payload.get("value") or [])
                next_link = payload.get("@odata.nextLink")
        except RemoteServiceError as exc:
            if exc.status_code == 404 or _NOT_FOUND.search(exc.message or ""):
                raise ResourceNotFoundError(exc.message, command=cmdlet, status_code=exc.status_code) from exc
            raise
        return rows

    # ------------------------------------------------------------------ #
    # Mailbox attributes                                                 #
    # ------------------------------------------------------------------ #
    def set_mailbox_attribute(self, mailbox: str, attribute: str, value: Optional[str]) -> None:
        self.invoke("Set-Mailbox", Identity=mailbox, **{attribute: value})

    def get_mailbox_attribute(self, mailbox: str, attribute: str) -> Optional[str]:
        rows = self.invoke("Get-Mailbox", Identity=mailbox)
        if not rows:
            raise ResourceNotFoundError(f"Mailbox {mailbox} couldn't be found", command="Get-Mailbox")
        return rows[0].get(attribute) or None

    # ------------------------------------------------------------------ #
    # Management scopes                                                  #
    # ------------------------------------------------------------------ #
    def list_management_scopes(self) -> List[ManagementScope]:
        return [ManagementScope.from_exchange(row) for row in self.invoke("Get-ManagementScope")]

    def create_management_scope(self, name: str, recipient_filter: str) -> ManagementScope:
        rows = self.invoke("New-ManagementScope", Name=name, RecipientRestrictionFilter=recipient_filter)
        if rows:
            return ManagementScope.from_exchange(rows[0])
        return ManagementScope(name=name, recipient_filter=recipient_filter)

    def remove_management_scope(self, name: str) -> None:
        self.invoke("Remove-ManagementScope", Identity=name, Confirm=False)

    # ------------------------------------------------------------------ #
    # Service principal pointers                                         #
    # ------------------------------------------------------------------ #
    def list_service_principals(self) -> List[PrincipalPointer]:
        return [PrincipalPointer.from_exchange(row) for row in self.invoke("Get-ServicePrincipal")]

    def create_service_principal(self, app_id: str, object_id: str, display_name: str) -> PrincipalPointer:
        rows = self.invoke("New-ServicePrincipal", AppId=app_id, ObjectId=object_id, DisplayName=display_name)
        if rows:
            return PrincipalPointer.from_exchange(rows[0])
        return PrincipalPointer(display_name=display_name, app_id=app_id, object_id=object_id, identity=object_id)

    def remove_service_principal(self, identity: str) -> None:
        self.invoke("Remove-ServicePrincipal", Identity=identity, Confirm=False)

    # ------------------------------------------------------------------ #
    # Roles and role assignments                                         #
    # ------------------------------------------------------------------ #
    def find_management_role(self, name: str) -> Optional[str]:
        try:
            rows = self.invoke("Get-ManagementRole", Identity=name)
        except ResourceNotFoundError:
            return None
        return str(rows[0].get("Name") or name) if rows else None

    def list_role_assignments(self, role_assignee: str) -> List[RoleAssignment]:
        try:
            rows = self.invoke("Get-ManagementRoleAssignment", RoleAssignee=role_assignee)
        except ResourceNotFoundError:
            return []
        return [RoleAssignment.from_exchange(row) for row in rows]

    def create_role_assignment(self, app: str, role: str, scope: str) -> RoleAssignment:
        rows = self.invoke("New-ManagementRoleAssignment", App=app, Role=role, CustomResourceScope=scope)
        if rows:
            return RoleAssignment.from_exchange(rows[0])
        return RoleAssignment(name=f"{role}-{app}", role=role, role_assignee=app, custom_resource_scope=scope)

    def remove_role_assignment(self, name: str) -> None:
        self.invoke("Remove-ManagementRoleAssignment", Identity=name, Confirm=False)

    # ------------------------------------------------------------------ #
    # Send-as permissions                                                #
    # ------------------------------------------------------------------ #
    def list_recipient_permissions(self, target: str, trustee: str) -> List[SendAsGrant]:
        try:
            rows = self.invoke("Get-RecipientPermission", Identity=target, Trustee=trustee)
        except ResourceNotFoundError:
            return []
        return [SendAsGrant.from_exchange(row) for row in rows]

    def add_send_as(self, target: str, trustee: str) -> None:
        self.invoke(
            "Add-RecipientPermission", Identity=target, Trustee=trustee, AccessRights=SEND_AS_RIGHT, Confirm=False
        )

    def remove_send_as(self, target: str, trustee: str) -> None:
        self.invoke(
            "Remove-RecipientPermission", Identity=target, Trustee=trustee, AccessRights=SEND_AS_RIGHT, Confirm=False
        )

    # ------------------------------------------------------------------ #
    # Effective authorization                                            #
    # ------------------------------------------------------------------ #
    def test_authorization(self, principal: str, mailbox: str) -> bool:
        rows = self.invoke("Test-ServicePrincipalAuthorization", Identity=principal, Resource=mailbox)
        return any(bool(row.get("InScope")) for row in rows)
