from __future__ import annotations

from sender_control.managers import MailboxTagger, PrincipalPointerManager, RoleAssignmentManager, ScopeManager
from sender_control.verifier import ALLOW, DENY, AuthorizationVerifier, ProbeResult

from .conftest import APP_ID, MAILBOXES, OBJECT_ID, OUTSIDER


def _authorize(service, audit):
    MailboxTagger(service, audit, "CustomAttribute1", "AllowedSenders").set_tags(MAILBOXES[:2])
    ScopeManager(service, audit).ensure_scope("AllowedSendersScope", "CustomAttribute1 -eq 'AllowedSenders'")
    PrincipalPointerManager(service, audit).ensure_pointer(APP_ID, OBJECT_ID, "Mail Sender Application")
    RoleAssignmentManager(service, audit).ensure_assignment(OBJECT_ID, "Application Mail.Send", "AllowedSendersScope")


def test_probe_reports_allow_and_deny(mailbox_service, audit):
    _authorize(mailbox_service, audit)

    results = AuthorizationVerifier(mailbox_service, audit).probe(OBJECT_ID, MAILBOXES, [OUTSIDER])

    assert [r.render() for r in results] == [
        f"ALLOW OK {MAILBOXES[0]}",
        f"ALLOW OK {MAILBOXES[1]}",
        f"ALLOW FAILED {MAILBOXES[2]}",
        f"DENY OK {OUTSIDER}",
    ]


def test_probe_errors_are_reported_not_raised(mailbox_service, audit, audit_store):
    results = AuthorizationVerifier(mailbox_service, audit).probe(OBJECT_ID, [MAILBOXES[0]], [OUTSIDER])

    assert [r.passed for r in results] == [False, False]
    assert results[0].in_scope is None
    assert "couldn't be found" in results[0].detail
    assert audit_store.messages().count("probe_result") == 2


def test_probe_result_pass_rules():
    assert ProbeResult("a", ALLOW, True).passed
    assert not ProbeResult("a", ALLOW, False).passed
    assert ProbeResult("a", DENY, False).passed
    assert not ProbeResult("a", DENY, None).passed
