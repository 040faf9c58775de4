from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .verifier import ProbeResult

CHANGED = "changed"
UNCHANGED = "unchanged"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class StepOutcome:
    name: str
    status: str
    detail: str = ""

    def render(self) -> str:
        line = f"[{self.status}] {self.name}"
        return f"{line}: {self.detail}" if self.detail else line


@dataclass
class RunReport:
    mode: str
    run_id: str
    steps: List[StepOutcome] = field(default_factory=list)
    probes: List[ProbeResult] = field(default_factory=list)

    def step(self, name: str) -> Optional[StepOutcome]:
        for outcome in self.steps:
            if outcome.name == name:
                return outcome
        return None

    @property
    def failed_steps(self) -> List[StepOutcome]:
        return [outcome for outcome in self.steps if outcome.status == FAILED]

    @property
    def probes_passed(self) -> bool:
        return all(probe.passed for probe in self.probes)

    def lines(self) -> List[str]:
        return [outcome.render() for outcome in self.steps] + [probe.render() for probe in self.probes]


@dataclass
class ProvisioningResult:
    run_id: str
    tenant_id: str = ""
    app_id: str = ""
    application_object_id: str = ""
    service_principal_id: str = ""
    steps: List[StepOutcome] = field(default_factory=list)

    def record(self, name: str, status: str, detail: str = "") -> StepOutcome:
        outcome = StepOutcome(name=name, status=status, detail=detail)
        self.steps.append(outcome)
        return outcome

    @property
    def grant_succeeded(self) -> bool:
        return any(step.name == "grant_mail_send" and step.status in (CHANGED, UNCHANGED) for step in self.steps)

    def lines(self) -> List[str]:
        lines = [outcome.render() for outcome in self.steps]
        lines.append(f"Application (client) ID: {self.app_id}")
        lines.append(f"Service principal object ID: {self.service_principal_id}")
        lines.append(f"Tenant ID: {self.tenant_id}")
        return lines
