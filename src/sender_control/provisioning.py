from __future__ import annotations

import uuid
from typing import Optional

from .audit import JsonAuditLogger
from .models import PermissionGrant, SignInAudience
from .protocols import DirectoryService
from .reports import CHANGED, FAILED, UNCHANGED, ProvisioningResult

MICROSOFT_GRAPH_APP_ID = "00000003-0000-0000-c000-000000000000"
MAIL_SEND_ROLE = "Mail.Send"


class DirectoryProvisioner:
    """Registers the sending application and grants it application-wide Mail.Send.

    Nothing is deleted here. If the Mail.Send role cannot be resolved the grant
    is reported as failed and the application and service principal are kept.
    """

    def __init__(
        self,
        directory: DirectoryService,
        audit: JsonAuditLogger,
        tenant_id: Optional[str] = None,
        resource_app_id: str = MICROSOFT_GRAPH_APP_ID,
        role_value: str = MAIL_SEND_ROLE,
    ):
        self.directory = directory
        self.audit = audit
        self.tenant_id = tenant_id
        self.resource_app_id = resource_app_id
        self.role_value = role_value

    def provision(
        self,
        display_name: str,
        sign_in_audience: SignInAudience = SignInAudience.SINGLE_TENANT,
        public_client: bool = True,
        run_id: Optional[str] = None,
    ) -> ProvisioningResult:
        result = ProvisioningResult(run_id=run_id or str(uuid.uuid4()))
        log = self.audit.bind(tenant_id=self.tenant_id, run_id=result.run_id)

        self.directory.connect()
        log.info("provisioning_started", display_name=display_name)

        application = self.directory.create_application(display_name, sign_in_audience, public_client)
        result.app_id = application.app_id
        result.application_object_id = application.object_id
        result.record("create_application", CHANGED, application.app_id)
        log.info("application_created", app_id=application.app_id)

        principal = self.directory.create_service_principal(application.app_id)
        result.service_principal_id = principal.object_id
        result.record("create_service_principal", CHANGED, principal.object_id)
        log.info("service_principal_created", service_principal_id=principal.object_id)

        self._grant_mail_send(principal.object_id, result, log)

        result.tenant_id = self.tenant_id or self.directory.get_tenant_id()
        log.info("provisioning_completed", app_id=result.app_id)
        return result

    def _grant_mail_send(self, principal_id: str, result: ProvisioningResult, log: JsonAuditLogger) -> None:
        resource = self.directory.find_service_principal(self.resource_app_id)
        if resource is None:
            result.record("grant_mail_send", FAILED, f"service principal {self.resource_app_id} not found")
            log.error("resource_principal_not_found", resource_app_id=self.resource_app_id)
            return

        role = resource.find_app_role(self.role_value)
        if role is None:
            result.record("grant_mail_send", FAILED, f"application role {self.role_value} not found")
            log.error("app_role_not_found", role=self.role_value)
            return

        grant = PermissionGrant(principal_id=principal_id, resource_id=resource.object_id, app_role_id=role.id)
        existing = {item.key() for item in self.directory.list_app_role_assignments(principal_id)}
        if grant.key() in existing:
            result.record("grant_mail_send", UNCHANGED, role.id)
            log.info("app_role_grant_already_present", app_role_id=role.id)
            return

        self.directory.create_app_role_assignment(grant)
        result.record("grant_mail_send", CHANGED, role.id)
        log.info("app_role_granted", app_role_id=role.id, resource_id=resource.object_id)
