"""In-memory stand-ins for the directory and mailbox-administration services."""
from __future__ import annotations

import re
import uuid
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .errors import ConnectionFailedError, RemoteServiceError, ResourceNotFoundError
from .models import (
    AppRole,
    ApplicationIdentity,
    ManagementScope,
    PermissionGrant,
    PrincipalPointer,
    RoleAssignment,
    SendAsGrant,
    ServicePrincipal,
    SignInAudience,
    same_identity,
)
from .provisioning import MAIL_SEND_ROLE, MICROSOFT_GRAPH_APP_ID

_FILTER = re.compile(r"^\s*(\w+)\s+-eq\s+'([^']*)'\s*$", re.IGNORECASE)


def _key(value: str) -> str:
    return (value or "").strip().casefold()


class _Recorder:
    def __init__(self, fail_on: Iterable[str] = ()) -> None:
        self.calls: List[Tuple[Any, ...]] = []
        self.fail_on: Set[str] = set(fail_on)
        self.connected = False
        self.connect_error: Optional[str] = None

    def _call(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise RemoteServiceError(400, "InjectedFailure", f"{name} rejected", command=name)

    def connect(self) -> None:
        self.calls.append(("connect",))
        if self.connect_error:
            raise ConnectionFailedError(self.connect_error)
        self.connected = True

    def close(self) -> None:
        self.calls.append(("close",))

    def mutations(self) -> List[Tuple[Any, ...]]:
        read_only = ("connect", "close", "get_", "list_", "find_", "test_")
        return [call for call in self.calls if not call[0].startswith(read_only)]


class FakeDirectoryService(_Recorder):
    """Fake directory that exposes a Microsoft Graph principal with a Mail.Send role."""

    def __init__(
        self,
        tenant_id: str = "00000000-0000-0000-0000-0000000000aa",
        expose_mail_send: bool = True,
        fail_on: Iterable[str] = (),
    ) -> None:
        super().__init__(fail_on)
        self.tenant_id = tenant_id
        self.applications: Dict[str, ApplicationIdentity] = {}
        self.service_principals: Dict[str, ServicePrincipal] = {}
        self.grants: List[PermissionGrant] = []

        roles = [AppRole(id=str(uuid.uuid4()), value="Mail.Send", allowed_member_types=["User"])]
        if expose_mail_send:
            roles.append(AppRole(id=str(uuid.uuid4()), value=MAIL_SEND_ROLE, allowed_member_types=["Application"]))
        graph = ServicePrincipal(
            object_id=str(uuid.uuid4()), app_id=MICROSOFT_GRAPH_APP_ID, display_name="Microsoft Graph", app_roles=roles
        )
        self.service_principals[graph.object_id] = graph

    @property
    def graph_principal(self) -> ServicePrincipal:
        return next(sp for sp in self.service_principals.values() if sp.app_id == MICROSOFT_GRAPH_APP_ID)

    def get_tenant_id(self) -> str:
        self._call("get_tenant_id")
        return self.tenant_id

    def create_application(
        self, display_name: str, sign_in_audience: SignInAudience, public_client: bool
    ) -> ApplicationIdentity:
        self._call("create_application", display_name, sign_in_audience, public_client)
        application = ApplicationIdentity(
            app_id=str(uuid.uuid4()),
            object_id=str(uuid.uuid4()),
            display_name=display_name,
            sign_in_audience=sign_in_audience,
        )
        self.applications[application.app_id] = application
        return application

    def create_service_principal(self, app_id: str) -> ServicePrincipal:
        self._call("create_service_principal", app_id)
        if app_id not in self.applications:
            raise ResourceNotFoundError(f"Application {app_id} couldn't be found", command="create_service_principal")
        principal = ServicePrincipal(
            object_id=str(uuid.uuid4()), app_id=app_id, display_name=self.applications[app_id].display_name
        )
        self.service_principals[principal.object_id] = principal
        return principal

    def find_service_principal(self, app_id: str) -> Optional[ServicePrincipal]:
        self._call("find_service_principal", app_id)
        for principal in self.service_principals.values():
            if principal.app_id == app_id:
                return principal
        return None

    def list_app_role_assignments(self, service_principal_id: str) -> List[PermissionGrant]:
        self._call("list_app_role_assignments", service_principal_id)
        return [grant for grant in self.grants if grant.principal_id == service_principal_id]

    def create_app_role_assignment(self, grant: PermissionGrant) -> PermissionGrant:
        self._call("create_app_role_assignment", grant)
        if any(existing.key() == grant.key() for existing in self.grants):
            raise RemoteServiceError(400, "Request_BadRequest", "Permission being assigned already exists")
        stored = PermissionGrant(
            principal_id=grant.principal_id,
            resource_id=grant.resource_id,
            app_role_id=grant.app_role_id,
            id=str(uuid.uuid4()),
        )
        self.grants.append(stored)
        return stored


class FakeMailboxAdminService(_Recorder):
    """Fake mailbox administration store with scope-filter evaluation."""

    def __init__(
        self,
        mailboxes: Iterable[str] = (),
        roles: Iterable[str] = ("Application Mail.Send", "Application Mail.Read"),
        fail_on: Iterable[str] = (),
    ) -> None:
        super().__init__(fail_on)
        self.mailboxes: Dict[str, Dict[str, Optional[str]]] = {_key(m): {"Identity": m} for m in mailboxes}
        self.roles: List[str] = list(roles)
        self.scopes: Dict[str, ManagementScope] = {}
        self.pointers: List[PrincipalPointer] = []
        self.assignments: List[RoleAssignment] = []
        self.send_as: Set[Tuple[str, str]] = set()

    def _mailbox(self, mailbox: str) -> Dict[str, Optional[str]]:
        record = self.mailboxes.get(_key(mailbox))
        if record is None:
            raise ResourceNotFoundError(f"The operation couldn't be performed because object '{mailbox}' couldn't be found")
        return record

    def set_mailbox_attribute(self, mailbox: str, attribute: str, value: Optional[str]) -> None:
        self._call("set_mailbox_attribute", mailbox, attribute, value)
        self._mailbox(mailbox)[attribute] = value or None

    def get_mailbox_attribute(self, mailbox: str, attribute: str) -> Optional[str]:
        self._call("get_mailbox_attribute", mailbox, attribute)
        return self._mailbox(mailbox).get(attribute)

    def list_management_scopes(self) -> List[ManagementScope]:
        self._call("list_management_scopes")
        return list(self.scopes.values())

    def create_management_scope(self, name: str, recipient_filter: str) -> ManagementScope:
        self._call("create_management_scope", name, recipient_filter)
        if _key(name) in self.scopes:
            raise RemoteServiceError(400, "DuplicateObject", f"Management scope {name} already exists")
        scope = ManagementScope(name=name, recipient_filter=recipient_filter)
        self.scopes[_key(name)] = scope
        return scope

    def remove_management_scope(self, name: str) -> None:
        self._call("remove_management_scope", name)
        if self.scopes.pop(_key(name), None) is None:
            raise ResourceNotFoundError(f"Management scope {name} couldn't be found")

    def list_service_principals(self) -> List[PrincipalPointer]:
        self._call("list_service_principals")
        return list(self.pointers)

    def create_service_principal(self, app_id: str, object_id: str, display_name: str) -> PrincipalPointer:
        self._call("create_service_principal", app_id, object_id, display_name)
        if any(pointer.matches(app_id, object_id) for pointer in self.pointers):
            raise RemoteServiceError(400, "DuplicateObject", f"Service principal {app_id} already exists")
        pointer = PrincipalPointer(display_name=display_name, app_id=app_id, object_id=object_id, identity=object_id)
        self.pointers.append(pointer)
        return pointer

    def remove_service_principal(self, identity: str) -> None:
        self._call("remove_service_principal", identity)
        remaining = [p for p in self.pointers if not same_identity(p.identity, identity)]
        if len(remaining) == len(self.pointers):
            raise ResourceNotFoundError(f"Service principal {identity} couldn't be found")
        self.pointers = remaining

    def _pointer_for(self, principal: str) -> Optional[PrincipalPointer]:
        for pointer in self.pointers:
            if any(same_identity(principal, key) for key in (pointer.identity, pointer.object_id, pointer.app_id)):
                return pointer
        return None

    def find_management_role(self, name: str) -> Optional[str]:
        self._call("find_management_role", name)
        for role in self.roles:
            if same_identity(role, name):
                return role
        return None

    def list_role_assignments(self, role_assignee: str) -> List[RoleAssignment]:
        self._call("list_role_assignments", role_assignee)
        return [a for a in self.assignments if same_identity(a.role_assignee, role_assignee)]

    def create_role_assignment(self, app: str, role: str, scope: str) -> RoleAssignment:
        self._call("create_role_assignment", app, role, scope)
        if self._pointer_for(app) is None:
            raise ResourceNotFoundError(f"Service principal {app} couldn't be found")
        if _key(scope) not in self.scopes:
            raise ResourceNotFoundError(f"Management scope {scope} couldn't be found")
        assignment = RoleAssignment(
            name=f"{role}-{uuid.uuid4().hex[:8]}", role=role, role_assignee=app, custom_resource_scope=scope
        )
        self.assignments.append(assignment)
        return assignment

    def remove_role_assignment(self, name: str) -> None:
        self._call("remove_role_assignment", name)
        self.assignments = [a for a in self.assignments if a.name != name]

    def list_recipient_permissions(self, target: str, trustee: str) -> List[SendAsGrant]:
        self._call("list_recipient_permissions", target, trustee)
        self._mailbox(target)
        if (_key(target), _key(trustee)) in self.send_as:
            return [SendAsGrant(target=target, trustee=trustee)]
        return []

    def add_send_as(self, target: str, trustee: str) -> None:
        self._call("add_send_as", target, trustee)
        self._mailbox(target)
        self._mailbox(trustee)
        self.send_as.add((_key(target), _key(trustee)))

    def remove_send_as(self, target: str, trustee: str) -> None:
        self._call("remove_send_as", target, trustee)
        self._mailbox(target)
        self.send_as.discard((_key(target), _key(trustee)))

    def test_authorization(self, principal: str, mailbox: str) -> bool:
        self._call("test_authorization", principal, mailbox)
        if self._pointer_for(principal) is None:
            raise ResourceNotFoundError(f"Service principal {principal} couldn't be found")
        record = self._mailbox(mailbox)
        for assignment in self.assignments:
            if not same_identity(assignment.role_assignee, principal):
                continue
            scope = self.scopes.get(_key(assignment.custom_resource_scope))
            if scope is None:
                continue
            match = _FILTER.match(scope.recipient_filter)
            if match and record.get(match.group(1)) == match.group(2):
                return True
        return False
