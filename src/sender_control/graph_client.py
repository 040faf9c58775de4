from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from .audit import JsonAuditLogger
from .auth import TokenAuthenticator
from .config import TenantConfig
from .errors import ResourceNotFoundError
from .models import ApplicationIdentity, PermissionGrant, ServicePrincipal, SignInAudience
from .rest_client import RestClient

GRAPH_API_VERSION = "v1.0"


def _escape(value: str) -> str:
    return value.replace("'", "''")


class GraphClient(RestClient):
    """Directory operations against Microsoft Graph for one tenant."""

    service = "graph"

    def __init__(
        self,
        tenant_config: TenantConfig,
        authenticator: TokenAuthenticator,
        audit_logger: JsonAuditLogger,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(
            tenant_config,
            authenticator,
            audit_logger,
            base_url=f"{tenant_config.graph_base_url.rstrip('/')}/{GRAPH_API_VERSION}",
            transport=transport,
        )

    def get(self, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        return self._json(self.request("GET", url, command=f"GET {path}", **kwargs))

    def post(self, path: str, json: Any, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        return self._json(self.request("POST", url, command=f"POST {path}", json=json, **kwargs))

    def get_tenant_id(self) -> str:
        organizations = self.get("/organization", params={"$select": "id"}).get("value") or []
        if not organizations:
            raise ResourceNotFoundError("No organization returned for the tenant", command="GET /organization")
        return organizations[0]["id"]

    def create_application(
        self, display_name: str, sign_in_audience: SignInAudience, public_client: bool
    ) -> ApplicationIdentity:
        payload = {
            "displayName": display_name,
            "signInAudience": sign_in_audience.value,
            "isFallbackPublicClient": public_client,
        }
        return ApplicationIdentity.from_graph(self.post("/applications", json=payload))

    def create_service_principal(self, app_id: str) -> ServicePrincipal:
        return ServicePrincipal.from_graph(self.post("/servicePrincipals", json={"appId": app_id}))

    def find_service_principal(self, app_id: str) -> Optional[ServicePrincipal]:
        result = self.get(
            "/servicePrincipals",
            params={
                "$filter": f"appId eq '{_escape(app_id)}'",
                "$select": "id,appId,displayName,appRoles",
            },
        )
        values = result.get("value") or []
        return ServicePrincipal.from_graph(values[0]) if values else None

    def list_app_role_assignments(self, service_principal_id: str) -> List[PermissionGrant]:
        page: Optional[str] = f"/servicePrincipals/{service_principal_id}/appRoleAssignments"
        grants: List[PermissionGrant] = []
        while page:
            result = self.get(page)
            grants.extend(PermissionGrant.from_graph(item) for item in result.get("value") or [])
            page = result.get("@odata.nextLink")
        return grants

    def create_app_role_assignment(self, grant: PermissionGrant) -> PermissionGrant:
        payload = {
            "principalId": grant.principal_id,
            "resourceId": grant.resource_id,
            "appRoleId": grant.app_role_id,
        }
        result = self.post(f"/servicePrincipals/{grant.principal_id}/appRoleAssignments", json=payload)
        return PermissionGrant.from_graph(result)
