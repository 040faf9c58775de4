from __future__ import annotations

from sender_control.managers import (
    DelegateSendManager,
    MailboxTagger,
    PrincipalPointerManager,
    RoleAssignmentManager,
    ScopeManager,
    build_recipient_filter,
)
from sender_control.models import PrincipalPointer, RoleAssignment

from .conftest import APP_ID, MAILBOXES, OBJECT_ID

FILTER = build_recipient_filter("CustomAttribute1", "AllowedSenders")


def test_build_recipient_filter():
    assert FILTER == "CustomAttribute1 -eq 'AllowedSenders'"


def test_tagger_sets_and_clears_idempotently(mailbox_service, audit):
    tagger = MailboxTagger(mailbox_service, audit, "CustomAttribute1", "AllowedSenders")

    tagger.set_tags(MAILBOXES)
    tagger.set_tags(MAILBOXES)
    assert all(mailbox_service.get_mailbox_attribute(m, "CustomAttribute1") == "AllowedSenders" for m in MAILBOXES)

    tagger.clear_tags(MAILBOXES)
    tagger.clear_tags(MAILBOXES)
    assert all(mailbox_service.get_mailbox_attribute(m, "CustomAttribute1") is None for m in MAILBOXES)


def test_tagger_skips_duplicate_identities(mailbox_service, audit):
    tagger = MailboxTagger(mailbox_service, audit, "CustomAttribute1", "AllowedSenders")

    tagged = tagger.set_tags(["alice@contoso.com", "ALICE@contoso.com", " "])

    assert tagged == ["alice@contoso.com"]


def test_scope_ensure_and_remove_are_idempotent(mailbox_service, audit, audit_store):
    scopes = ScopeManager(mailbox_service, audit)

    assert scopes.ensure_scope("AllowedSendersScope", FILTER) is True
    assert scopes.ensure_scope("AllowedSendersScope", FILTER) is False
    assert len(mailbox_service.scopes) == 1

    assert scopes.remove_scope("AllowedSendersScope") is True
    assert scopes.remove_scope("AllowedSendersScope") is False
    assert mailbox_service.scopes == {}
    assert "scope_already_absent" in audit_store.messages()


def test_pointer_ensure_matches_either_identifier(mailbox_service, audit):
    mailbox_service.pointers.append(
        PrincipalPointer(display_name="Legacy", app_id="other-app", object_id=OBJECT_ID, identity=OBJECT_ID)
    )
    pointers = PrincipalPointerManager(mailbox_service, audit)

    pointer, created = pointers.ensure_pointer(APP_ID, OBJECT_ID, "Mail Sender Application")

    assert created is False
    assert pointer.display_name == "Legacy"
    assert len(mailbox_service.pointers) == 1


def test_pointer_removal_is_keyed_on_application_id(mailbox_service, audit):
    pointers = PrincipalPointerManager(mailbox_service, audit)
    pointers.ensure_pointer(APP_ID, OBJECT_ID, "Original Name")
    renamed = mailbox_service.pointers[0]
    mailbox_service.pointers[0] = PrincipalPointer(
        display_name="Renamed Elsewhere", app_id=renamed.app_id, object_id=renamed.object_id, identity=renamed.identity
    )

    assert pointers.remove_pointer(APP_ID) is True
    assert mailbox_service.pointers == []
    assert pointers.remove_pointer(APP_ID) is False


def test_assignment_with_same_role_other_scope_does_not_block_creation(mailbox_service, audit):
    pointers = PrincipalPointerManager(mailbox_service, audit)
    pointers.ensure_pointer(APP_ID, OBJECT_ID, "Mail Sender Application")
    scopes = ScopeManager(mailbox_service, audit)
    scopes.ensure_scope("OtherScope", FILTER)
    scopes.ensure_scope("AllowedSendersScope", FILTER)
    roles = RoleAssignmentManager(mailbox_service, audit)

    assert roles.ensure_assignment(OBJECT_ID, "Application Mail.Send", "OtherScope") is True
    assert roles.ensure_assignment(OBJECT_ID, "Application Mail.Send", "AllowedSendersScope") is True
    assert roles.ensure_assignment(OBJECT_ID, "Application Mail.Send", "AllowedSendersScope") is False
    assert len(mailbox_service.assignments) == 2


def test_remove_all_assignments_ignores_role_and_scope(mailbox_service, audit):
    mailbox_service.assignments.extend(
        [
            RoleAssignment(name="a1", role="Application Mail.Send", role_assignee=OBJECT_ID, custom_resource_scope="S1"),
            RoleAssignment(name="a2", role="Application Mail.Read", role_assignee=OBJECT_ID, custom_resource_scope="S2"),
            RoleAssignment(name="a3", role="Application Mail.Send", role_assignee="someone-else"),
        ]
    )
    roles = RoleAssignmentManager(mailbox_service, audit)

    assert roles.remove_all_assignments(OBJECT_ID) == 2
    assert [a.name for a in mailbox_service.assignments] == ["a3"]
    assert roles.remove_all_assignments(OBJECT_ID) == 0


def test_resolve_role_returns_none_for_unknown_role(mailbox_service, audit):
    roles = RoleAssignmentManager(mailbox_service, audit)

    assert roles.resolve_role("application mail.send") == "Application Mail.Send"
    assert roles.resolve_role("Application Calendars.Read") is None


def test_send_as_never_targets_the_source_mailbox(mailbox_service, audit):
    delegates = DelegateSendManager(mailbox_service, audit)

    granted = delegates.grant("alice@contoso.com", ["ALICE@Contoso.com", "bob@contoso.com", "carol@contoso.com"])

    assert granted == ["bob@contoso.com", "carol@contoso.com"]
    assert ("alice@contoso.com", "alice@contoso.com") not in mailbox_service.send_as
    assert not any(call[0] == "add_send_as" and call[1].lower() == "alice@contoso.com" for call in mailbox_service.calls)

    revoked = delegates.revoke("Alice@contoso.com", MAILBOXES)
    assert revoked == ["bob@contoso.com", "carol@contoso.com"]
    assert not any(call[0] == "remove_send_as" and call[1].lower() == "alice@contoso.com" for call in mailbox_service.calls)
    assert mailbox_service.send_as == set()


def test_send_as_grant_skips_existing_permission(mailbox_service, audit):
    delegates = DelegateSendManager(mailbox_service, audit)
    delegates.grant("alice@contoso.com", ["bob@contoso.com"])

    assert delegates.grant("alice@contoso.com", ["bob@contoso.com"]) == []
    assert sum(1 for call in mailbox_service.calls if call[0] == "add_send_as") == 1


def test_send_as_revoke_tolerates_missing_grant(mailbox_service, audit):
    delegates = DelegateSendManager(mailbox_service, audit)

    assert delegates.revoke("alice@contoso.com", ["bob@contoso.com"]) == ["bob@contoso.com"]
