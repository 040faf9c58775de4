from __future__ import annotations

import time
from typing import Any, Dict, Optional

import httpx

from .audit import JsonAuditLogger
from .auth import TokenAuthenticator
from .config import TenantConfig
from .errors import ConnectionFailedError, RemoteServiceError

THROTTLE_STATUSES = (429, 503, 504)


class RestClient:
    """Tenant-scoped JSON client shared by the Graph and Exchange admin clients."""

    service = "rest"

    def __init__(
        self,
        tenant_config: TenantConfig,
        authenticator: TokenAuthenticator,
        audit_logger: JsonAuditLogger,
        base_url: str,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.tenant_config = tenant_config
        self.authenticator = authenticator
        self.audit = audit_logger
        self.base_url = base_url.rstrip("/")
        self.max_retries = tenant_config.max_retries
        self.session = httpx.Client(timeout=tenant_config.timeout, transport=transport)

    def connect(self) -> None:
        """Acquire the first token so authentication problems surface before any change is made."""
        self.authenticator.acquire_token()
        self.audit.info("session_established", tenant_id=self.tenant_config.tenant_id, service=self.service)

    def close(self) -> None:
        self.session.close()

    def _auth_header(self) -> Dict[str, str]:
        token = self.authenticator.acquire_token()
        return {"Authorization": f"Bearer {token}", "Accept": "application/json"}

    def request(self, method: str, url: str, command: Optional[str] = None, **kwargs: Any) -> httpx.Response:
        headers = kwargs.pop("headers", {}) or {}
        headers.update(self._auth_header())
        backoff = 1.0

        for attempt in range(1, self.max_retries + 2):
            try:
                response = self.session.request(method, url, headers=headers, **kwargs)
            except httpx.TransportError as exc:
                raise ConnectionFailedError(f"{self.service} request to {url} failed: {exc}") from exc

            if response.status_code in THROTTLE_STATUSES and attempt <= self.max_retries:
                retry_after = self._get_retry_after_seconds(response) or backoff
                self.audit.warning(
                    "request_throttled",
                    tenant_id=self.tenant_config.tenant_id,
                    service=self.service,
                    status=response.status_code,
                    retry_after=retry_after,
                    attempt=attempt,
                )
                time.sleep(retry_after)
                backoff = min(backoff * 2, 30)
                continue

            if response.status_code >= 400:
                self.audit.error(
                    "request_failed",
                    tenant_id=self.tenant_config.tenant_id,
                    service=self.service,
                    status=response.status_code,
                    url=url,
                    command=command,
                    body=response.text,
                )
                raise self._error_from_response(response, command)

            self.audit.debug(
                "request_succeeded",
                tenant_id=self.tenant_config.tenant_id,
                service=self.service,
                status=response.status_code,
                url=url,
                command=command,
            )
            return response

        raise RemoteServiceError(0, "Throttled", "Maximum retry attempts exceeded", command=command)

    def _error_from_response(self, response: httpx.Response, command: Optional[str]) -> RemoteServiceError:
        try:
            payload = response.json()
            payload = payload if isinstance(payload, dict) else {}
            error = payload.get("error") or {}
            if isinstance(error, dict):
                code = error.get("code", "RemoteError")
                message = error.get("message", response.text)
            else:
                code = str(error)
                message = payload.get("error_description", response.text)
        except ValueError:
            code = "RemoteError"
            message = response.text or "Unknown error."
        return RemoteServiceError(response.status_code, code, message, command=command)

    def _get_retry_after_seconds(self, response: httpx.Response) -> Optional[float]:
        retry_after = response.headers.get("Retry-After")
        if retry_after is None:
            return None
        try:
            return float(retry_after)
        except ValueError:
            return None

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()
