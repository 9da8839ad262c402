"""FHIR resources as exchanged with the platform."""

from __future__ import annotations

import copy
from typing import Any


class Resource:
    """A FHIR resource backed by its wire-format dictionary."""

    def __init__(self, resource_type: str, **properties: Any):
        self._fhir: dict[str, Any] = {"resourceType": resource_type, **properties}

    @classmethod
    def from_fhir(cls, data: dict[str, Any]) -> Resource:
        """Wrap a wire-format dictionary without running ``__init__``."""
        if "resourceType" not in data:
            raise ValueError("FHIR object is missing 'resourceType'")
        resource = cls.__new__(cls)
        resource._fhir = copy.deepcopy(data)
        return resource

    @property
    def resource_type(self) -> str:
        return self._fhir["resourceType"]

    @property
    def id(self) -> str | None:
        return self._fhir.get("id")

    def get_property(self, name: str) -> Any:
        return self._fhir.get(name)

    def add_property(self, name: str, value: Any) -> None:
        self._fhir[name] = value

    def to_fhir(self) -> dict[str, Any]:
        return copy.deepcopy(self._fhir)

    def __repr__(self) -> str:
        name = type(self).__name__
        return f"{name}(resourceType={self.resource_type!r}, id={self.id!r})"


class Patient(Resource):
    """Patient record of a platform user."""

    def __init__(self, **properties: Any):
        super().__init__("Patient", **properties)

    @property
    def email(self) -> str | None:
        """First email-like telecom value of the record."""
        telecom = self.get_property("telecom") or []
        for contact in telecom:
            if not isinstance(contact, dict):
                continue
            if contact.get("system", "email") == "email" and contact.get("value"):
                return contact["value"]
        return None
