from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import msal
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import ManagedIdentityCredential

from .audit import JsonAuditLogger
from .config import CertificateAuth, ClientSecretAuth, ManagedIdentityAuth, TenantConfig
from .errors import ConnectionFailedError


class TokenAuthenticator:
    """Acquires app-only tokens for one remote service within a tenant.

    The MSAL application (or managed identity credential) is built on first use
    and reused for the rest of the run, so its in-memory token cache acts as the
    session for every call made against the service.
    """

    def __init__(
        self,
        tenant_config: TenantConfig,
        scopes: Iterable[str],
        audit_logger: JsonAuditLogger,
        service: str = "graph",
    ):
        self.tenant_config = tenant_config
        self.scopes: List[str] = list(scopes)
        self.audit = audit_logger
        self.service = service
        self._app: Optional[msal.ConfidentialClientApplication] = None
        self._credential: Optional[ManagedIdentityCredential] = None

    def acquire_token(self) -> str:
        auth_config = self.tenant_config.auth

        if isinstance(auth_config, (ClientSecretAuth, CertificateAuth)):
            app = self._confidential_app()
            result = app.acquire_token_silent(self.scopes, account=None)
            if not result:
                result = app.acquire_token_for_client(scopes=self.scopes)
            token = self._extract_token(result)
            self.audit.debug(
                "acquired_app_token",
                tenant_id=self.tenant_config.tenant_id,
                service=self.service,
                auth_type=auth_config.type,
            )
            return token

        if isinstance(auth_config, ManagedIdentityAuth):
            if self._credential is None:
                self._credential = ManagedIdentityCredential(client_id=auth_config.client_id)
            try:
                result = self._credential.get_token(*self.scopes)
            except ClientAuthenticationError as exc:
                raise ConnectionFailedError(
                    f"Managed identity token request for {self.service} failed: {exc}"
                ) from exc
            self.audit.debug(
                "acquired_app_token",
                tenant_id=self.tenant_config.tenant_id,
                service=self.service,
                auth_type="managed_identity",
            )
            return result.token

        raise ConnectionFailedError("Unsupported authentication configuration")

    def _confidential_app(self) -> msal.ConfidentialClientApplication:
        if self._app is not None:
            return self._app

        auth_config = self.tenant_config.auth
        credential: Any
        if isinstance(auth_config, ClientSecretAuth):
            try:
                credential = auth_config.client_secret.resolve()
            except ValueError as exc:
                raise ConnectionFailedError(str(exc)) from exc
        elif isinstance(auth_config, CertificateAuth):
            credential = self._load_certificate(auth_config)
        else:
            raise ConnectionFailedError(f"{auth_config.type} authentication has no confidential client")

        self._app = msal.ConfidentialClientApplication(
            client_id=auth_config.client_id,
            client_credential=credential,
            authority=f"{auth_config.authority_host}/{self.tenant_config.tenant_id}",
            token_cache=msal.TokenCache(),
        )
        return self._app

    def _extract_token(self, result: Optional[Dict[str, Any]]) -> str:
        if not result or "access_token" not in result:
            self.audit.error(
                "token_acquisition_failed",
                tenant_id=self.tenant_config.tenant_id,
                service=self.service,
                error=(result or {}).get("error"),
            )
            raise ConnectionFailedError(
                f"Token acquisition for {self.service} failed: {json.dumps(result)}"
            )
        return result["access_token"]

    def _load_certificate(self, auth_config: CertificateAuth) -> Dict[str, Any]:
        path = Path(auth_config.certificate_path)
        password = None
        if auth_config.certificate_password:
            try:
                password = auth_config.certificate_password.resolve()
            except ValueError as exc:
                raise ConnectionFailedError(str(exc)) from exc
        try:
            with path.open("rb") as handle:
                certificate_bytes = handle.read()
        except OSError as exc:
            raise ConnectionFailedError(f"Failed to read certificate at {path}: {exc}") from exc

        return {
            "private_key": certificate_bytes.decode("utf-8"),
            "thumbprint": auth_config.thumbprint,
            "passphrase": password,
        }
