"""Mapping between wire-format FHIR objects and resource classes.

Resource classes are looked up by a discriminator: an observation's coding
codes first, then the ``resourceType``. Unknown objects map to a plain
``Resource``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from midata.resources.base import Patient, Resource
from midata.resources.observation import BodyHeight, BodyWeight, Temperature

logger = logging.getLogger(__name__)

ResourceFactory = Callable[[dict[str, Any]], Resource]


class ResourceRegistry:
    def __init__(self) -> None:
        self._factories: dict[str, ResourceFactory] = {}

    def register(self, discriminator: str, factory: ResourceFactory) -> None:
        """Register ``factory`` for a coding code or resource type."""
        if discriminator in self._factories:
            raise ValueError(f"Resource '{discriminator}' is already registered")
        self._factories[discriminator] = factory

    def from_fhir(self, data: dict[str, Any]) -> Resource:
        """Build the registered resource for a wire-format object."""
        coding = (data.get("code") or {}).get("coding") or []
        for entry in coding:
            factory = self._factories.get(entry.get("code"))
            if factory is not None:
                return factory(data)

        factory = self._factories.get(data.get("resourceType"))
        if factory is not None:
            return factory(data)

        logger.debug(f"No resource class registered for {data.get('resourceType')}")
        return Resource.from_fhir(data)


def to_fhir(resource: Resource | dict[str, Any]) -> dict[str, Any]:
    """Convert a resource (or an already wire-format dict) for sending."""
    if isinstance(resource, Resource):
        return resource.to_fhir()
    return dict(resource)


def default_registry() -> ResourceRegistry:
    registry = ResourceRegistry()
    registry.register("Patient", Patient.from_fhir)
    registry.register(BodyWeight.CODE, BodyWeight.from_fhir)
    registry.register(BodyHeight.CODE, BodyHeight.from_fhir)
    registry.register(Temperature.CODE, Temperature.from_fhir)
    return registry
