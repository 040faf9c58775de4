"""Idempotent ensure/remove routines for each mailbox-administration resource.

Every ``ensure_*`` looks the resource up before creating it and every
``remove_*`` is a no-op when the resource is already gone, so both flows can
be re-run safely. Check-then-act is not atomic against the remote store.
"""
from __future__ import annotations

from typing import Any, Iterable, List, Optional, Tuple

from .audit import JsonAuditLogger
from .models import PrincipalPointer, same_identity
from .protocols import MailboxAdminService


def build_recipient_filter(attribute: str, value: str) -> str:
    return f"{attribute} -eq '{value}'"


def _unique(values: Iterable[str]) -> List[str]:
    seen: set = set()
    result: List[str] = []
    for value in values:
        cleaned = (value or "").strip()
        if cleaned and cleaned.casefold() not in seen:
            seen.add(cleaned.casefold())
            result.append(cleaned)
    return result


class _Manager:
    def __init__(self, service: MailboxAdminService, audit: JsonAuditLogger):
        self.service = service
        self.audit = audit

    def _log(self, message: str, **kwargs: Any) -> None:
        self.audit.info(message, **kwargs)


class MailboxTagger(_Manager):
    """Marks mailboxes as allowed senders through a custom attribute."""

    def __init__(
        self,
        service: MailboxAdminService,
        audit: JsonAuditLogger,
        attribute: str,
        value: str,
    ):
        super().__init__(service, audit)
        self.attribute = attribute
        self.value = value

    def set_tags(self, mailboxes: Iterable[str]) -> List[str]:
        tagged = _unique(mailboxes)
        for mailbox in tagged:
            self.service.set_mailbox_attribute(mailbox, self.attribute, self.value)
            self._log("mailbox_tagged", mailbox=mailbox, attribute=self.attribute)
        return tagged

    def clear_tags(self, mailboxes: Iterable[str]) -> List[str]:
        cleared = _unique(mailboxes)
        for mailbox in cleared:
            self.service.set_mailbox_attribute(mailbox, self.attribute, None)
            self._log("mailbox_tag_cleared", mailbox=mailbox, attribute=self.attribute)
        return cleared


class ScopeManager(_Manager):
    def _find(self, name: str):
        for scope in self.service.list_management_scopes():
            if same_identity(scope.name, name):
                return scope
        return None

    def ensure_scope(self, name: str, recipient_filter: str) -> bool:
        """Create the scope when no scope with ``name`` exists. Returns True when created."""
        if self._find(name) is not None:
            self._log("scope_already_present", scope=name)
            return False
        self.service.create_management_scope(name, recipient_filter)
        self._log("scope_created", scope=name, recipient_filter=recipient_filter)
        return True

    def remove_scope(self, name: str) -> bool:
        scope = self._find(name)
        if scope is None:
            self._log("scope_already_absent", scope=name)
            return False
        self.service.remove_management_scope(scope.name)
        self._log("scope_removed", scope=name)
        return True


class PrincipalPointerManager(_Manager):
    """Keeps the mailbox-side pointer to the application's service principal.

    Creation matches an existing pointer by application id or object id.
    Removal is keyed on the application id only, so a pointer whose display
    name drifted is still found.
    """

    def find_pointer(self, app_id: str, object_id: str = "") -> Optional[PrincipalPointer]:
        for pointer in self.service.list_service_principals():
            if pointer.matches(app_id, object_id):
                return pointer
        return None

    def ensure_pointer(self, app_id: str, object_id: str, display_name: str) -> Tuple[PrincipalPointer, bool]:
        existing = self.find_pointer(app_id, object_id)
        if existing is not None:
            self._log("pointer_already_present", app_id=app_id, display_name=existing.display_name)
            return existing, False
        pointer = self.service.create_service_principal(app_id, object_id, display_name)
        self._log("pointer_created", app_id=app_id, object_id=object_id, display_name=display_name)
        return pointer, True

    def remove_pointer(self, app_id: str) -> bool:
        existing = self.find_pointer(app_id)
        if existing is None:
            self._log("pointer_already_absent", app_id=app_id)
            return False
        self.service.remove_service_principal(existing.identity or existing.object_id)
        self._log("pointer_removed", app_id=app_id, display_name=existing.display_name)
        return True


class RoleAssignmentManager(_Manager):
    def resolve_role(self, role_name: str) -> Optional[str]:
        return self.service.find_management_role(role_name)

    def ensure_assignment(self, principal: str, role_name: str, scope_name: str) -> bool:
        """Bind ``role_name`` to ``principal`` within ``scope_name`` unless that exact binding exists."""
        for assignment in self.service.list_role_assignments(principal):
            if assignment.role == role_name and assignment.custom_resource_scope == scope_name:
                self._log("assignment_already_present", principal=principal, role=role_name, scope=scope_name)
                return False
        self.service.create_role_assignment(principal, role_name, scope_name)
        self._log("assignment_created", principal=principal, role=role_name, scope=scope_name)
        return True

    def remove_all_assignments(self, principal: str) -> int:
        """Delete every assignment held by ``principal``, whatever its role or scope."""
        assignments = self.service.list_role_assignments(principal)
        for assignment in assignments:
            self.service.remove_role_assignment(assignment.name)
            self._log(
                "assignment_removed",
                principal=principal,
                assignment=assignment.name,
                role=assignment.role,
                scope=assignment.custom_resource_scope,
            )
        return len(assignments)


class DelegateSendManager(_Manager):
    """Grants or revokes send-as from a source mailbox onto target mailboxes."""

    def _targets(self, source: str, targets: Iterable[str]) -> List[str]:
        return [target for target in _unique(targets) if not same_identity(target, source)]

    def grant(self, source: str, targets: Iterable[str]) -> List[str]:
        granted: List[str] = []
        for target in self._targets(source, targets):
            existing = self.service.list_recipient_permissions(target, source)
            if any(same_identity(grant.trustee, source) and grant.includes_send_as() for grant in existing):
                self._log("send_as_already_present", source=source, target=target)
                continue
            self.service.add_send_as(target, source)
            self._log("send_as_granted", source=source, target=target)
            granted.append(target)
        return granted

    def revoke(self, source: str, targets: Iterable[str]) -> List[str]:
        revoked: List[str] = []
        for target in self._targets(source, targets):
            self.service.remove_send_as(target, source)
            self._log("send_as_revoked", source=source, target=target)
            revoked.append(target)
        return revoked
