from __future__ import annotations

import os
import re
from pathlib import Path
from typing import List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError

_CUSTOM_ATTRIBUTE = re.compile(r"^CustomAttribute([1-9]|1[0-5])$")


class SecretRef(BaseModel):
    """Reference to a secret supplied at runtime.

    Only environment variables and inline values are resolved here. Inline
    values are meant for local development.
    """

    env: Optional[str] = Field(
        default=None, description="Environment variable name containing the secret"
    )
    value: Optional[str] = Field(
        default=None,
        description="Inline value (local development only)",
    )

    model_config = ConfigDict(extra="forbid")

    def resolve(self) -> str:
        if self.env:
            env_value = os.getenv(self.env)
            if env_value:
                return env_value
            raise ValueError(f"Environment variable {self.env} is not set")
        if self.value:
            return self.value
        raise ValueError("No secret reference provided for resolution")


class ClientSecretAuth(BaseModel):
    type: Literal["client_secret"]
    client_id: str
    client_secret: SecretRef
    authority_host: str = Field(
        default="https://login.microsoftonline.com",
        description="Entra ID authority host",
    )

    model_config = ConfigDict(extra="forbid")


class CertificateAuth(BaseModel):
    type: Literal["certificate"]
    client_id: str
    certificate_path: Path
    thumbprint: str
    certificate_password: Optional[SecretRef] = None
    authority_host: str = Field(
        default="https://login.microsoftonline.com",
        description="Entra ID authority host",
    )

    model_config = ConfigDict(extra="forbid")


class ManagedIdentityAuth(BaseModel):
    type: Literal["managed_identity"]
    client_id: Optional[str] = Field(
        default=None, description="Optional user-assigned managed identity client ID"
    )

    model_config = ConfigDict(extra="forbid")


AuthConfig = Union[ClientSecretAuth, CertificateAuth, ManagedIdentityAuth]


class TenantConfig(BaseModel):
    tenant_id: str
    organization: Optional[str] = Field(
        default=None, description="Primary domain, e.g. contoso.onmicrosoft.com"
    )
    auth: AuthConfig = Field(discriminator="type")
    graph_base_url: str = Field(
        default="https://graph.microsoft.com",
        description="Graph endpoint. Override for national clouds if needed.",
    )
    exchange_base_url: str = Field(
        default="https://outlook.office365.com",
        description="Exchange Online admin API endpoint.",
    )
    graph_scopes: List[str] = Field(
        default_factory=lambda: ["https://graph.microsoft.com/.default"]
    )
    exchange_scopes: List[str] = Field(
        default_factory=lambda: ["https://outlook.office365.com/.default"]
    )
    timeout: float = 30.0
    max_retries: int = Field(
        default=0, ge=0, description="Throttle retries (429/503/504). Zero disables retrying."
    )

    model_config = ConfigDict(extra="forbid")

    @field_validator("graph_scopes", "exchange_scopes")
    @classmethod
    def ensure_scopes(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("At least one scope must be provided per service")
        return value


class AuthorizationSettings(BaseModel):
    scope_name: str = "AllowedSendersScope"
    pointer_display_name: str = "Mail Sender Application"
    role_name: str = "Application Mail.Send"
    tag_attribute: str = "CustomAttribute1"
    tag_value: str = "AllowedSenders"

    model_config = ConfigDict(extra="forbid")

    @field_validator("tag_attribute")
    @classmethod
    def validate_tag_attribute(cls, value: str) -> str:
        if not _CUSTOM_ATTRIBUTE.match(value):
            raise ValueError("tag_attribute must be one of CustomAttribute1..CustomAttribute15")
        return value

    @field_validator("tag_value")
    @classmethod
    def validate_tag_value(cls, value: str) -> str:
        if not value or "'" in value:
            raise ValueError("tag_value must be non-empty and must not contain quotes")
        return value


class SenderControlConfig(BaseModel):
    tenant: TenantConfig
    authorization: AuthorizationSettings = Field(default_factory=AuthorizationSettings)

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def load(cls, path: Union[str, Path]) -> "SenderControlConfig":
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        with config_path.open("r", encoding="utf-8") as handle:
            try:
                raw = yaml.safe_load(handle) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

        try:
            return cls(**raw)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration in {config_path}: {exc}") from exc
