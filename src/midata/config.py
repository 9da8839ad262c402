"""Client configuration."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_REDIRECT_URI = "http://localhost/callback"
DEFAULT_SCOPE = "user/*.*"


class MidataConfig(BaseModel):
    """Connection settings for one MIDATA platform and application.

    Args:
        host: Platform URL, e.g. "https://test.midata.coop:9000"
        app_name: Internal application name as registered on the platform
        secret: Application secret, only used by password-grant login
        conformance_statement_endpoint: Where the OAuth endpoints are
            published. Defaults to ``<host>/fhir/metadata``.
        redirect_uri: Redirect target registered for the application
        scope: OAuth scope requested during authorization
        pkce_length: Length of the generated PKCE state and verifier
        timeout: HTTP request timeout in seconds
    """

    model_config = ConfigDict(frozen=True)

    host: str
    app_name: str
    secret: str | None = None
    conformance_statement_endpoint: str | None = None
    redirect_uri: str = DEFAULT_REDIRECT_URI
    scope: str = DEFAULT_SCOPE
    pkce_length: int = Field(default=128, ge=43, le=128)
    timeout: float = 30.0

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("'host' must be a valid HTTP URL")
        return v

    @model_validator(mode="before")
    @classmethod
    def default_conformance_endpoint(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        host = data.get("host")
        if data.get("conformance_statement_endpoint") is None and isinstance(host, str):
            endpoint = f"{host.rstrip('/')}/fhir/metadata"
            data = {**data, "conformance_statement_endpoint": endpoint}
        return data

    @property
    def base_url(self) -> str:
        return self.host.rstrip("/")

    @property
    def fhir_url(self) -> str:
        return f"{self.base_url}/fhir"

    def with_platform(
        self, host: str, conformance_statement_endpoint: str | None = None
    ) -> MidataConfig:
        """Return a copy pointing at another platform host."""
        return MidataConfig(
            **self.model_dump(exclude={"host", "conformance_statement_endpoint"}),
            host=host,
            conformance_statement_endpoint=conformance_statement_endpoint,
        )
