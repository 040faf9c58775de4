from __future__ import annotations

import pytest

from sender_control.errors import ConnectionFailedError, RemoteServiceError
from sender_control.fakes import FakeDirectoryService
from sender_control.models import ServicePrincipal, SignInAudience
from sender_control.provisioning import DirectoryProvisioner
from sender_control.reports import CHANGED, FAILED, UNCHANGED


def test_provision_creates_application_principal_and_grant(directory, audit):
    result = DirectoryProvisioner(directory, audit).provision("Mail Sender", SignInAudience.SINGLE_TENANT)

    assert [step.status for step in result.steps] == [CHANGED, CHANGED, CHANGED]
    assert result.grant_succeeded
    assert result.tenant_id == directory.tenant_id
    application = directory.applications[result.app_id]
    assert application.sign_in_audience is SignInAudience.SINGLE_TENANT
    assert ("create_application", "Mail Sender", SignInAudience.SINGLE_TENANT, True) in directory.calls

    (grant,) = directory.grants
    role = directory.graph_principal.find_app_role("Mail.Send")
    assert grant.principal_id == result.service_principal_id
    assert grant.resource_id == directory.graph_principal.object_id
    assert grant.app_role_id == role.id
    assert "Application (client) ID: " + result.app_id in result.lines()


def test_only_application_assignable_role_is_granted(directory):
    roles = directory.graph_principal.app_roles

    delegated = [role for role in roles if not role.allows_applications()]
    assert delegated and delegated[0].value == "Mail.Send"
    assert directory.graph_principal.find_app_role("Mail.Send").allows_applications()


def test_missing_role_fails_the_grant_but_keeps_earlier_objects(audit, audit_store):
    directory = FakeDirectoryService(expose_mail_send=False)

    result = DirectoryProvisioner(directory, audit).provision("Mail Sender")

    assert result.steps[-1].name == "grant_mail_send"
    assert result.steps[-1].status == FAILED
    assert not result.grant_succeeded
    assert result.app_id in directory.applications
    assert result.service_principal_id in directory.service_principals
    assert directory.grants == []
    assert "app_role_not_found" in audit_store.messages()


def test_missing_resource_principal_fails_the_grant(audit):
    directory = FakeDirectoryService()
    directory.service_principals.clear()

    result = DirectoryProvisioner(directory, audit).provision("Mail Sender")

    assert result.steps[-1].status == FAILED
    assert "not found" in result.steps[-1].detail


def test_existing_grant_is_not_recreated(directory, audit):
    provisioner = DirectoryProvisioner(directory, audit, tenant_id="configured-tenant")
    result = provisioner.provision("Mail Sender")

    again = type(result)(run_id="second")
    provisioner._grant_mail_send(result.service_principal_id, again, audit)

    assert again.steps[-1].status == UNCHANGED
    assert len(directory.grants) == 1
    assert result.tenant_id == "configured-tenant"
    assert not any(call[0] == "get_tenant_id" for call in directory.calls)


def test_mutation_failure_propagates(audit):
    directory = FakeDirectoryService(fail_on=["create_service_principal"])

    with pytest.raises(RemoteServiceError):
        DirectoryProvisioner(directory, audit).provision("Mail Sender")

    assert len(directory.applications) == 1


def test_connection_failure_stops_before_creating_anything(directory, audit):
    directory.connect_error = "token request failed"

    with pytest.raises(ConnectionFailedError):
        DirectoryProvisioner(directory, audit).provision("Mail Sender")

    assert directory.applications == {}


def test_service_principal_role_lookup_requires_application_member_type():
    principal = ServicePrincipal.from_graph(
        {
            "id": "sp",
            "appId": "app",
            "appRoles": [
                {"id": "r1", "value": "Mail.Send", "allowedMemberTypes": ["User"]},
                {"id": "r2", "value": "Mail.Read", "allowedMemberTypes": ["Application"]},
            ],
        }
    )

    assert principal.find_app_role("Mail.Send") is None
    assert principal.find_app_role("Mail.Read").id == "r2"
