"""Remote resources reconciled by the provisioning and authorization tools."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

SEND_AS_RIGHT = "SendAs"


class SignInAudience(str, enum.Enum):
    SINGLE_TENANT = "AzureADMyOrg"
    MULTI_TENANT = "AzureADMultipleOrgs"
    MULTI_TENANT_AND_PERSONAL = "AzureADandPersonalMicrosoftAccount"
    PERSONAL_ONLY = "PersonalMicrosoftAccount"


def _first(record: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = record.get(key)
        if value:
            return str(value)
    return ""


def same_identity(left: Optional[str], right: Optional[str]) -> bool:
    """Case-insensitive comparison of mailbox or principal identities."""
    return (left or "").strip().casefold() == (right or "").strip().casefold()


@dataclass(frozen=True)
class ApplicationIdentity:
    app_id: str
    object_id: str
    display_name: str
    sign_in_audience: SignInAudience

    @classmethod
    def from_graph(cls, record: Dict[str, Any]) -> "ApplicationIdentity":
        return cls(
            app_id=record["appId"],
            object_id=record["id"],
            display_name=record.get("displayName", ""),
            sign_in_audience=SignInAudience(record.get("signInAudience", SignInAudience.SINGLE_TENANT.value)),
        )


@dataclass(frozen=True)
class AppRole:
    id: str
    value: str
    allowed_member_types: List[str] = field(default_factory=list)

    @classmethod
    def from_graph(cls, record: Dict[str, Any]) -> "AppRole":
        return cls(
            id=record["id"],
            value=record.get("value") or "",
            allowed_member_types=list(record.get("allowedMemberTypes") or []),
        )

    def allows_applications(self) -> bool:
        return any(member.lower() == "application" for member in self.allowed_member_types)


@dataclass(frozen=True)
class ServicePrincipal:
    object_id: str
    app_id: str
    display_name: str = ""
    app_roles: List[AppRole] = field(default_factory=list)

    @classmethod
    def from_graph(cls, record: Dict[str, Any]) -> "ServicePrincipal":
        return cls(
            object_id=record["id"],
            app_id=record.get("appId", ""),
            display_name=record.get("displayName") or "",
            app_roles=[AppRole.from_graph(role) for role in record.get("appRoles") or []],
        )

    def find_app_role(self, value: str) -> Optional[AppRole]:
        """Application-assignable role with the given value, if the principal exposes one."""
        for role in self.app_roles:
            if role.value == value and role.allows_applications():
                return role
        return None


@dataclass(frozen=True)
class PermissionGrant:
    principal_id: str
    resource_id: str
    app_role_id: str
    id: Optional[str] = None

    @classmethod
    def from_graph(cls, record: Dict[str, Any]) -> "PermissionGrant":
        return cls(
            principal_id=record["principalId"],
            resource_id=record["resourceId"],
            app_role_id=record["appRoleId"],
            id=record.get("id"),
        )

    def key(self) -> tuple:
        return (self.principal_id.lower(), self.resource_id.lower(), self.app_role_id.lower())


@dataclass(frozen=True)
class ManagementScope:
    name: str
    recipient_filter: str

    @classmethod
    def from_exchange(cls, record: Dict[str, Any]) -> "ManagementScope":
        return cls(
            name=_first(record, "Name", "Identity"),
            recipient_filter=_first(record, "RecipientRestrictionFilter", "RecipientFilter"),
        )


@dataclass(frozen=True)
class PrincipalPointer:
    display_name: str
    app_id: str
    object_id: str
    identity: str = ""

    @classmethod
    def from_exchange(cls, record: Dict[str, Any]) -> "PrincipalPointer":
        object_id = _first(record, "ObjectId", "ServiceId")
        return cls(
            display_name=_first(record, "DisplayName", "Name"),
            app_id=_first(record, "AppId"),
            object_id=object_id,
            identity=_first(record, "Identity") or object_id,
        )

    def matches(self, app_id: str, object_id: str) -> bool:
        return bool(
            (app_id and same_identity(self.app_id, app_id))
            or (object_id and same_identity(self.object_id, object_id))
        )


@dataclass(frozen=True)
class RoleAssignment:
    name: str
    role: str
    role_assignee: str
    custom_resource_scope: str = ""

    @classmethod
    def from_exchange(cls, record: Dict[str, Any]) -> "RoleAssignment":
        return cls(
            name=_first(record, "Name", "Identity"),
            role=_first(record, "Role"),
            role_assignee=_first(record, "RoleAssignee", "RoleAssigneeName"),
            custom_resource_scope=_first(record, "CustomResourceScope"),
        )


@dataclass(frozen=True)
class SendAsGrant:
    target: str
    trustee: str
    access_rights: List[str] = field(default_factory=lambda: [SEND_AS_RIGHT])

    @classmethod
    def from_exchange(cls, record: Dict[str, Any]) -> "SendAsGrant":
        rights = record.get("AccessRights") or []
        if isinstance(rights, str):
            rights = [part.strip() for part in rights.split(",") if part.strip()]
        return cls(
            target=_first(record, "Identity"),
            trustee=_first(record, "Trustee"),
            access_rights=list(rights),
        )

    def includes_send_as(self) -> bool:
        return any(right.lower() == SEND_AS_RIGHT.lower() for right in self.access_rights)


__all__ = [
    "SEND_AS_RIGHT",
    "AppRole",
    "ApplicationIdentity",
    "ManagementScope",
    "PermissionGrant",
    "PrincipalPointer",
    "RoleAssignment",
    "SendAsGrant",
    "ServicePrincipal",
    "SignInAudience",
    "same_identity",
]
