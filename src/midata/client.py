"""MIDATA platform client.

Brings together configuration, session management and the FHIR resource
operations, which all run through the authenticated request wrapper.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode, urlparse

from midata.auth.models.conformance import OAuthEndpoints
from midata.auth.models.errors import (
    ConformanceUnavailableError,
    ProfileLookupError,
    ServerError,
)
from midata.auth.models.session import Language, Session, User
from midata.auth.models.tokens import UserRole
from midata.auth.services.conformance import ConformanceResolver
from midata.auth.services.requests import (
    FHIR_CONTENT_TYPE,
    ApiRequest,
    AuthenticatedRequestWrapper,
)
from midata.auth.session import AuthOutcome, SessionManager
from midata.config import MidataConfig
from midata.resources.base import Patient, Resource
from midata.resources.registry import ResourceRegistry, default_registry, to_fhir
from midata.transport.http import (
    HttpRequestExecutor,
    HttpResponse,
    HttpxRequestExecutor,
)
from midata.transport.redirect import LoopbackRedirectListener, RedirectListener

logger = logging.getLogger(__name__)


class MidataClient:
    """Client for one application on one MIDATA platform.

    Usage::

        async with MidataClient(MidataConfig(host=..., app_name=...)) as client:
            await client.authenticate()
            observations = await client.search("Observation")
    """

    def __init__(
        self,
        config: MidataConfig,
        executor: HttpRequestExecutor | None = None,
        redirect_listener: RedirectListener | None = None,
        registry: ResourceRegistry | None = None,
        session: Session | None = None,
    ):
        """Initialize the client.

        Args:
            config: Platform and application settings
            executor: HTTP executor; defaults to an httpx-based one
            redirect_listener: Authorization view for ``authenticate()``;
                defaults to a loopback listener when the redirect URI is
                a plain http:// URL
            registry: Resource mapping used for search and save results
            session: Session to manage; a fresh one by default
        """
        self.config = config
        self.session = session if session is not None else Session()
        self.registry = registry or default_registry()

        self._owns_executor = executor is None
        self._executor = executor or HttpxRequestExecutor(timeout=config.timeout)

        loopback = urlparse(config.redirect_uri).scheme == "http"
        if redirect_listener is None and loopback:
            redirect_listener = LoopbackRedirectListener(config.redirect_uri)

        self.conformance = ConformanceResolver(self._executor, self.session)
        self.session_manager = SessionManager(
            self.session,
            config,
            self._executor,
            self.conformance,
            redirect_listener=redirect_listener,
            profile_lookup=self._fetch_user_email,
        )
        self._requests = AuthenticatedRequestWrapper(
            self._executor, self.session_manager
        )

    async def __aenter__(self) -> MidataClient:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def start(self) -> None:
        """Discover the OAuth endpoints.

        A failure is logged, not raised; endpoints are fetched again on the
        first operation that needs them.
        """
        try:
            await self.fetch_conformance_statement()
        except ConformanceUnavailableError as e:
            logger.error(f"Conformance statement unavailable: {e}")

    async def close(self) -> None:
        """Close the HTTP executor if this client created it."""
        if self._owns_executor and isinstance(self._executor, HttpxRequestExecutor):
            await self._executor.close()

    # ================================
    # Session
    # ================================

    @property
    def logged_in(self) -> bool:
        return self.session.logged_in

    @property
    def auth_token(self) -> str | None:
        return self.session.access_token

    @property
    def refresh_token(self) -> str | None:
        return self.session.refresh_token

    @property
    def user(self) -> User | None:
        return self.session.user

    async def fetch_conformance_statement(self) -> OAuthEndpoints:
        """Fetch the OAuth endpoints, replacing any known ones."""
        return await self.conformance.fetch(self.config.conformance_statement_endpoint)

    async def login(
        self, username: str, password: str, role: UserRole | None = None
    ) -> AuthOutcome:
        return await self.session_manager.login(username, password, role)

    async def authenticate(self) -> AuthOutcome:
        return await self.session_manager.authenticate()

    async def refresh(self, refresh_token: str | None = None) -> AuthOutcome:
        return await self.session_manager.refresh(refresh_token)

    def logout(self) -> None:
        self.session_manager.logout()

    def set_user_email(self, email: str) -> None:
        self.session_manager.set_user_email(email)

    def set_user_language(self, language: Language) -> None:
        self.session_manager.set_user_language(language)

    def change_platform(
        self, host: str, conformance_statement_endpoint: str | None = None
    ) -> None:
        """Point the client at another platform. Forces a logout."""
        self.config = self.config.with_platform(host, conformance_statement_endpoint)
        self.session_manager.change_platform(self.config)
        logger.info(f"Changed platform to {self.config.base_url}")

    # ================================
    # Resources
    # ================================

    async def save(self, resource: Resource | dict[str, Any]) -> Resource:
        """Create or update a resource.

        Resources without an id (and bundles) are created, others updated.

        Returns:
            The stored resource as returned by the platform
        """
        fhir_object = to_fhir(resource)
        resource_type = fhir_object["resourceType"]
        should_create = fhir_object.get("id") is None or resource_type == "Bundle"

        if should_create:
            if resource_type == "Bundle":
                url = self.config.fhir_url
            else:
                url = f"{self.config.fhir_url}/{resource_type}"
            method = "POST"
        else:
            url = f"{self.config.fhir_url}/{resource_type}/{fhir_object['id']}"
            method = "PUT"

        response = await self._requests.execute(
            ApiRequest(
                method=method,
                url=url,
                headers={
                    "Content-Type": FHIR_CONTENT_TYPE,
                    "Prefer": "return=representation",
                },
                payload=fhir_object,
            )
        )

        if response.status not in (200, 201) or not isinstance(response.body, dict):
            raise ServerError(
                response.status,
                f"Unexpected response status code: {response.status}",
                response.body,
            )
        return self.registry.from_fhir(response.body)

    async def search(
        self, resource_type: str, params: dict[str, Any] | None = None
    ) -> list[Resource]:
        """Query resources of a type.

        Args:
            resource_type: e.g. "Observation"
            params: Search parameters, e.g. {"status": "preliminary"}
        """
        return await self._search(resource_type, params or {})

    async def delete(self, resource_type: str, resource_id: str | int) -> HttpResponse:
        return await self._requests.execute(
            ApiRequest(
                method="DELETE",
                url=f"{self.config.fhir_url}/{resource_type}/{resource_id}",
            )
        )

    async def _search(
        self, resource_type: str, params: dict[str, Any], allow_refresh: bool = True
    ) -> list[Resource]:
        url = f"{self.config.fhir_url}/{resource_type}"
        if params:
            url = f"{url}?{urlencode(params)}"

        response = await self._requests.execute(
            ApiRequest(
                method="GET", url=url, headers={"Content-Type": FHIR_CONTENT_TYPE}
            ),
            allow_refresh=allow_refresh,
        )

        body = response.body if isinstance(response.body, dict) else {}
        resources = []
        for entry in body.get("entry") or []:
            try:
                resources.append(self.registry.from_fhir(entry["resource"]))
            except (KeyError, TypeError, AttributeError, ValueError) as e:
                raise ServerError(
                    response.status, "Invalid search response", response.body
                ) from e
        return resources

    async def _fetch_user_email(self, patient_id: str) -> str:
        # Never refreshes: this runs right after a login, authenticate or refresh
        resources = await self._search(
            "Patient", {"_id": patient_id}, allow_refresh=False
        )
        if not resources:
            raise ProfileLookupError(f"No patient record found for {patient_id}")

        patient = resources[0]
        try:
            email = patient.email if isinstance(patient, Patient) else None
        except (TypeError, AttributeError) as e:
            raise ProfileLookupError(
                f"Patient record {patient_id} is malformed: {e}"
            ) from e
        if email is None:
            raise ProfileLookupError(f"Patient record {patient_id} has no email")
        return email
