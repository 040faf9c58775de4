"""Apply and rollback flows for the constrained sending identity.

Apply: tag mailboxes, ensure scope, ensure pointer, resolve the role, ensure
the assignment, optionally grant send-as, then probe. Rollback tears the same
resources down in reverse dependency order. A remote error aborts the run with
whatever state was reached; nothing is compensated.
"""
from __future__ import annotations

import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from .audit import JsonAuditLogger
from .config import AuthorizationSettings
from .errors import ConfigurationError, SenderControlError
from .managers import (
    DelegateSendManager,
    MailboxTagger,
    PrincipalPointerManager,
    RoleAssignmentManager,
    ScopeManager,
    build_recipient_filter,
)
from .protocols import MailboxAdminService
from .reports import CHANGED, FAILED, SKIPPED, UNCHANGED, RunReport, StepOutcome
from .verifier import AuthorizationVerifier

APPLY = "apply"
ROLLBACK = "rollback"


@dataclass
class AuthorizationRequest:
    app_id: str
    object_id: str
    allowed_mailboxes: List[str]
    settings: AuthorizationSettings = field(default_factory=AuthorizationSettings)
    identity_mailbox: Optional[str] = None
    grant_send_as: bool = False
    denied_samples: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.app_id or not self.object_id:
            raise ConfigurationError("Both the application id and the service principal object id are required")
        if not self.allowed_mailboxes:
            raise ConfigurationError("At least one allowed mailbox is required")
        if self.grant_send_as and not self.identity_mailbox:
            raise ConfigurationError("An identity mailbox is required to grant send-as")

    @property
    def principal(self) -> str:
        return self.object_id

    @property
    def recipient_filter(self) -> str:
        return build_recipient_filter(self.settings.tag_attribute, self.settings.tag_value)


class AuthorizationOrchestrator:
    """Converges the mailbox-administration state to the request, or back to empty."""

    def __init__(self, mailbox: MailboxAdminService, audit: JsonAuditLogger, tenant_id: Optional[str] = None):
        self.mailbox = mailbox
        self.audit = audit
        self.tenant_id = tenant_id

    def run(self, request: AuthorizationRequest, rollback: bool = False, run_id: Optional[str] = None) -> RunReport:
        report = RunReport(mode=ROLLBACK if rollback else APPLY, run_id=run_id or str(uuid.uuid4()))
        log = self.audit.bind(tenant_id=self.tenant_id, run_id=report.run_id)

        self.mailbox.connect()
        log.info("run_started", mode=report.mode, app_id=request.app_id)
        try:
            if rollback:
                self._rollback(request, report, log)
            else:
                self._apply(request, report, log)
        except SenderControlError as exc:
            log.error("run_aborted", mode=report.mode, completed_steps=len(report.steps), error=str(exc))
            raise
        log.info(
            "run_completed",
            mode=report.mode,
            failed_steps=[step.name for step in report.failed_steps],
            probes_passed=report.probes_passed,
        )
        return report

    def apply(self, request: AuthorizationRequest, run_id: Optional[str] = None) -> RunReport:
        return self.run(request, rollback=False, run_id=run_id)

    def rollback(self, request: AuthorizationRequest, run_id: Optional[str] = None) -> RunReport:
        return self.run(request, rollback=True, run_id=run_id)

    def verify(self, request: AuthorizationRequest, run_id: Optional[str] = None) -> RunReport:
        report = RunReport(mode="verify", run_id=run_id or str(uuid.uuid4()))
        log = self.audit.bind(tenant_id=self.tenant_id, run_id=report.run_id)
        self.mailbox.connect()
        report.probes = AuthorizationVerifier(self.mailbox, log).probe(
            request.principal, request.allowed_mailboxes, request.denied_samples
        )
        return report

    @contextmanager
    def _step(self, name: str, report: RunReport, log: JsonAuditLogger) -> Iterator[StepOutcome]:
        """Log and record one step; a step that raises is neither completed nor recorded."""
        log.info("step_started", step=name)
        outcome = StepOutcome(name=name, status=UNCHANGED)
        yield outcome
        report.steps.append(outcome)
        log.info("step_completed", step=name, status=outcome.status)

    def _apply(self, request: AuthorizationRequest, report: RunReport, log: JsonAuditLogger) -> None:
        settings = request.settings

        with self._step("tag_mailboxes", report, log) as step:
            tagger = MailboxTagger(self.mailbox, log, settings.tag_attribute, settings.tag_value)
            step.status, step.detail = CHANGED, ", ".join(tagger.set_tags(request.allowed_mailboxes))

        with self._step("ensure_scope", report, log) as step:
            if ScopeManager(self.mailbox, log).ensure_scope(settings.scope_name, request.recipient_filter):
                step.status = CHANGED
            step.detail = settings.scope_name

        with self._step("ensure_pointer", report, log) as step:
            _, created = PrincipalPointerManager(self.mailbox, log).ensure_pointer(
                request.app_id, request.object_id, settings.pointer_display_name
            )
            step.status = CHANGED if created else UNCHANGED
            step.detail = settings.pointer_display_name

        roles = RoleAssignmentManager(self.mailbox, log)
        with self._step("resolve_role", report, log) as step:
            role_name = roles.resolve_role(settings.role_name)
            if role_name is None:
                step.status, step.detail = FAILED, f"management role {settings.role_name} not found"
                log.error("management_role_not_found", role=settings.role_name)
            else:
                step.detail = role_name

        with self._step("ensure_assignment", report, log) as step:
            if role_name is None:
                step.status, step.detail = SKIPPED, "role not resolved"
            else:
                if roles.ensure_assignment(request.principal, role_name, settings.scope_name):
                    step.status = CHANGED
                step.detail = f"{role_name} @ {settings.scope_name}"

        if request.grant_send_as and request.identity_mailbox:
            with self._step("grant_send_as", report, log) as step:
                granted = DelegateSendManager(self.mailbox, log).grant(
                    request.identity_mailbox, request.allowed_mailboxes
                )
                step.status = CHANGED if granted else UNCHANGED
                step.detail = ", ".join(granted)

        report.probes = AuthorizationVerifier(self.mailbox, log).probe(
            request.principal, request.allowed_mailboxes, request.denied_samples
        )

    def _rollback(self, request: AuthorizationRequest, report: RunReport, log: JsonAuditLogger) -> None:
        settings = request.settings

        with self._step("remove_assignments", report, log) as step:
            removed = RoleAssignmentManager(self.mailbox, log).remove_all_assignments(request.principal)
            step.status, step.detail = (CHANGED if removed else UNCHANGED), f"{removed} removed"

        with self._step("remove_pointer", report, log) as step:
            if PrincipalPointerManager(self.mailbox, log).remove_pointer(request.app_id):
                step.status = CHANGED
            step.detail = request.app_id

        with self._step("remove_scope", report, log) as step:
            if ScopeManager(self.mailbox, log).remove_scope(settings.scope_name):
                step.status = CHANGED
            step.detail = settings.scope_name

        if request.grant_send_as and request.identity_mailbox:
            with self._step("revoke_send_as", report, log) as step:
                revoked = DelegateSendManager(self.mailbox, log).revoke(
                    request.identity_mailbox, request.allowed_mailboxes
                )
                step.status = CHANGED if revoked else UNCHANGED
                step.detail = ", ".join(revoked)

        with self._step("clear_tags", report, log) as step:
            tagger = MailboxTagger(self.mailbox, log, settings.tag_attribute, settings.tag_value)
            step.status, step.detail = CHANGED, ", ".join(tagger.clear_tags(request.allowed_mailboxes))
