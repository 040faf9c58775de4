from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from .audit import JsonAuditLogger
from .auth import TokenAuthenticator
from .config import SenderControlConfig
from .errors import SenderControlError
from .exchange_client import ExchangeAdminClient
from .graph_client import GraphClient
from .models import SignInAudience
from .orchestrator import AuthorizationOrchestrator, AuthorizationRequest
from .provisioning import DirectoryProvisioner


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Provision and scope an application that sends mail as selected mailboxes")
    parser.add_argument("--config", required=True, help="Path to the tenant configuration YAML")
    subparsers = parser.add_subparsers(dest="command", required=True)

    provision = subparsers.add_parser("provision-app", help="Register the sending application and grant Mail.Send")
    provision.add_argument("--display-name", required=True, help="Display name of the application")
    provision.add_argument(
        "--sign-in-audience",
        choices=[audience.value for audience in SignInAudience],
        default=SignInAudience.SINGLE_TENANT.value,
        help="Accounts allowed to sign in to the application",
    )

    for name, help_text in (
        ("authorize", "Restrict the application to the allowed mailboxes, or roll that back"),
        ("verify", "Probe the application's effective mailbox scope"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--app-id", required=True, help="Application (client) ID")
        sub.add_argument("--object-id", required=True, help="Object ID of the application's service principal")
        sub.add_argument(
            "--allowed-mailbox",
            action="append",
            required=True,
            dest="allowed_mailboxes",
            help="Mailbox the application may send as (repeatable)",
        )
        sub.add_argument(
            "--deny-probe",
            action="append",
            default=[],
            dest="denied_samples",
            help="Mailbox expected to be out of scope (repeatable)",
        )

    authorize = subparsers.choices["authorize"]
    authorize.add_argument("--scope-name", help="Management scope name")
    authorize.add_argument("--display-name", help="Display name of the mailbox-side service principal")
    authorize.add_argument("--role-name", help="Management role to assign")
    authorize.add_argument("--identity-mailbox", help="Mailbox granted send-as onto the allowed mailboxes")
    authorize.add_argument("--grant-send-as", action="store_true", help="Also manage send-as from the identity mailbox")
    authorize.add_argument("--rollback", action="store_true", help="Remove everything a previous run created")
    return parser.parse_args(argv)


def _build_request(args: argparse.Namespace, config: SenderControlConfig) -> AuthorizationRequest:
    overrides = {
        "scope_name": getattr(args, "scope_name", None),
        "pointer_display_name": getattr(args, "display_name", None),
        "role_name": getattr(args, "role_name", None),
    }
    settings = config.authorization.model_copy(update={k: v for k, v in overrides.items() if v})
    return AuthorizationRequest(
        app_id=args.app_id,
        object_id=args.object_id,
        allowed_mailboxes=list(args.allowed_mailboxes),
        settings=settings,
        identity_mailbox=getattr(args, "identity_mailbox", None),
        grant_send_as=getattr(args, "grant_send_as", False),
        denied_samples=list(args.denied_samples),
    )


def _emit(lines: List[str]) -> None:
    for line in lines:
        print(line)


def run(args: argparse.Namespace, audit_logger: Optional[JsonAuditLogger] = None) -> List[str]:
    config = SenderControlConfig.load(Path(args.config))
    tenant = config.tenant
    audit = audit_logger or JsonAuditLogger()

    if args.command == "provision-app":
        graph = GraphClient(tenant, TokenAuthenticator(tenant, tenant.graph_scopes, audit, service="graph"), audit)
        try:
            result = DirectoryProvisioner(graph, audit, tenant_id=tenant.tenant_id).provision(
                args.display_name, SignInAudience(args.sign_in_audience)
            )
        finally:
            graph.close()
        return result.lines()

    request = _build_request(args, config)
    exchange = ExchangeAdminClient(
        tenant, TokenAuthenticator(tenant, tenant.exchange_scopes, audit, service="exchange"), audit
    )
    orchestrator = AuthorizationOrchestrator(exchange, audit, tenant_id=tenant.tenant_id)
    try:
        if args.command == "verify":
            report = orchestrator.verify(request)
        else:
            report = orchestrator.run(request, rollback=args.rollback)
    finally:
        exchange.close()
    return report.lines()


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    try:
        lines = run(args)
    except SenderControlError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
    _emit(lines)


if __name__ == "__main__":
    main()
