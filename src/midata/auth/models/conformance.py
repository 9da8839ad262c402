"""FHIR conformance statement models.

Only the part of the statement that carries the OAuth endpoints is modelled:
``rest[0].security.extension[0].extension[0|1].valueUri``.
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field


class _Extension(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    url: str | None = None
    value_uri: str | None = Field(default=None, alias="valueUri")
    extension: list[_Extension] = Field(default_factory=list)


class _Security(BaseModel):
    model_config = ConfigDict(extra="allow")

    extension: list[_Extension] = Field(min_length=1)


class _Rest(BaseModel):
    model_config = ConfigDict(extra="allow")

    security: _Security


class ConformanceStatement(BaseModel):
    """Server metadata document served at ``<host>/fhir/metadata``."""

    model_config = ConfigDict(extra="allow")

    rest: list[_Rest] = Field(min_length=1)

    def oauth_endpoints(self) -> OAuthEndpoints:
        """Extract the token and authorize endpoints.

        Raises:
            ValueError: If the fixed path doesn't hold two URIs
        """
        uris = self.rest[0].security.extension[0].extension
        if len(uris) < 2 or not uris[0].value_uri or not uris[1].value_uri:
            raise ValueError("Conformance statement lacks OAuth endpoint URIs")

        return OAuthEndpoints(
            token_endpoint=uris[0].value_uri,
            authorize_endpoint=uris[1].value_uri,
        )


@dataclass(frozen=True)
class OAuthEndpoints:
    token_endpoint: str
    authorize_endpoint: str
