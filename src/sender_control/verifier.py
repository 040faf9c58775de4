from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from .audit import JsonAuditLogger
from .errors import RemoteServiceError
from .protocols import MailboxAdminService

ALLOW = "allow"
DENY = "deny"


@dataclass(frozen=True)
class ProbeResult:
    mailbox: str
    expectation: str
    in_scope: Optional[bool]
    detail: str = ""

    @property
    def passed(self) -> bool:
        if self.in_scope is None:
            return False
        return self.in_scope is (self.expectation == ALLOW)

    def render(self) -> str:
        line = f"{self.expectation.upper()} {'OK' if self.passed else 'FAILED'} {self.mailbox}"
        return f"{line} ({self.detail})" if self.detail else line


class AuthorizationVerifier:
    """Observes whether the principal's effective scope covers each mailbox.

    Purely diagnostic: a mismatch or a failed probe call is reported and never
    raised.
    """

    def __init__(self, service: MailboxAdminService, audit: JsonAuditLogger):
        self.service = service
        self.audit = audit

    def probe(
        self,
        principal: str,
        allowed: Iterable[str],
        denied_samples: Iterable[str] = (),
    ) -> List[ProbeResult]:
        results = [self._probe_one(principal, mailbox, ALLOW) for mailbox in allowed]
        results.extend(self._probe_one(principal, mailbox, DENY) for mailbox in denied_samples)
        return results

    def _probe_one(self, principal: str, mailbox: str, expectation: str) -> ProbeResult:
        try:
            in_scope: Optional[bool] = self.service.test_authorization(principal, mailbox)
            detail = ""
        except RemoteServiceError as exc:
            in_scope = None
            detail = exc.message
        result = ProbeResult(mailbox=mailbox, expectation=expectation, in_scope=in_scope, detail=detail)
        log = self.audit.info if result.passed else self.audit.warning
        log(
            "probe_result",
            principal=principal,
            mailbox=mailbox,
            expectation=expectation,
            in_scope=in_scope,
            passed=result.passed,
        )
        return result
