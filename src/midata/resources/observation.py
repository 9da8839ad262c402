"""Observation resources for vital signs."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from midata.resources.base import Resource

LOINC = "http://loinc.org"
SNOMED = "http://snomed.info/sct"
UCUM = "http://unitsofmeasure.org"

VITAL_SIGNS = {
    "coding": [
        {
            "system": "http://hl7.org/fhir/observation-category",
            "code": "vital-signs",
            "display": "Vital Signs",
        }
    ],
    "text": "Vital Signs",
}


class Observation(Resource):
    """A final observation with a single quantity value."""

    def __init__(
        self,
        code: dict[str, Any],
        date: datetime,
        value_quantity: dict[str, Any] | None = None,
        category: dict[str, Any] | None = None,
    ):
        super().__init__(
            "Observation",
            status="final",
            code=code,
            effectiveDateTime=date.isoformat(),
        )
        if category is not None:
            self.add_property("category", category)
        if value_quantity is not None:
            self.add_property("valueQuantity", value_quantity)

    @property
    def codes(self) -> list[str]:
        coding = (self.get_property("code") or {}).get("coding") or []
        return [c["code"] for c in coding if "code" in c]


class BodyWeight(Observation):
    CODE = "3141-9"

    def __init__(self, weight_kg: float, date: datetime):
        super().__init__(
            code={
                "coding": [
                    {"system": LOINC, "code": self.CODE, "display": "Weight Measured"}
                ]
            },
            date=date,
            value_quantity={"value": weight_kg, "unit": "kg", "system": UCUM},
            category=VITAL_SIGNS,
        )


class BodyHeight(Observation):
    CODE = "8302-2"

    def __init__(self, height_cm: float, date: datetime):
        super().__init__(
            code={
                "coding": [
                    {"system": LOINC, "code": self.CODE, "display": "Body Height"}
                ]
            },
            date=date,
            value_quantity={"value": height_cm, "unit": "cm", "system": UCUM},
            category=VITAL_SIGNS,
        )


class Temperature(Observation):
    CODE = "8310-5"

    def __init__(self, temp_c: float, date: datetime):
        super().__init__(
            code={
                "coding": [
                    {"system": LOINC, "code": self.CODE, "display": "Body temperature"},
                    {
                        "system": SNOMED,
                        "code": "56342008",
                        "display": "Temperature taking",
                    },
                ],
                "text": "Body temperature",
            },
            date=date,
            value_quantity={
                "value": temp_c,
                "unit": "degrees C",
                "code": "258710007",
                "system": SNOMED,
            },
            category=VITAL_SIGNS,
        )
