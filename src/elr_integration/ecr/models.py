"""Pydantic models for the canonical case-report document.

Models are frozen; the assembler builds new instances with ``model_copy``
when it merges order data into the patient and document root. Field aliases
are the JSON keys the case-report controller expects.
"""

from __future__ import annotations

from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field


class _ValueObject(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class CodedElement(_ValueObject):
    """A coded value taken from one encoding (primary or alternate) of a CE."""

    system: str = Field(default="", alias="System")
    code: str = Field(default="", alias="Code")
    display: str = Field(default="", alias="Display")

    @property
    def is_empty(self) -> bool:
        return not (self.system or self.code or self.display)


class Identifier(_ValueObject):
    value: str = Field(..., description="Identifier value")
    type: str = Field(default="MR", description="Identifier type code")


class PatientName(_ValueObject):
    given: str = Field(default="", description="Given name, middle appended")
    family: str = Field(default="")


class Provider(_ValueObject):
    id: Identifier | None = Field(default=None, alias="ID")
    name: str | None = Field(default=None, alias="Name")
    address: str | None = Field(default=None, alias="Address")


class Facility(_ValueObject):
    name: str | None = Field(default=None, alias="Name")
    id: str | None = Field(default=None, alias="ID")
    phone: str | None = Field(default=None, alias="Phone")
    address: str | None = Field(default=None, alias="Address")


class LabResult(_ValueObject):
    system: str = Field(default="", alias="System")
    code: str = Field(default="", alias="Code")
    display: str = Field(default="", alias="Display")
    value: str | None = Field(default=None, alias="Value")
    unit: CodedElement | None = Field(default=None, alias="Unit")
    date: str | None = Field(default=None, alias="Date", description="ISO-8601")


class LabOrder(_ValueObject):
    system: str = Field(default="", alias="System")
    code: str = Field(default="", alias="Code")
    display: str = Field(default="", alias="Display")
    provider: Provider | None = Field(default=None, alias="Provider")
    facility: Facility | None = Field(default=None, alias="Facility")
    reasons: tuple[CodedElement, ...] | None = Field(default=None, alias="Reasons")
    datetime: str | None = Field(default=None, alias="DateTime", description="ISO-8601")
    results: tuple[LabResult, ...] = Field(default=(), alias="Laboratory_Results")


class Patient(_ValueObject):
    id: Union[tuple[Identifier, ...], str] = Field(default=(), alias="ID")
    name: PatientName = Field(default_factory=PatientName, alias="Name")
    birth_date: str | None = Field(default=None, alias="Birth_Date")
    sex: str = Field(default="", alias="Sex")
    race: CodedElement | None = Field(default=None, alias="Race")
    street_address: str | None = Field(default=None, alias="Street_Address")
    preferred_language: CodedElement | None = Field(default=None, alias="Preferred_Language")
    ethnicity: CodedElement | None = Field(default=None, alias="Ethnicity")
    lab_orders: tuple[LabOrder, ...] = Field(default=(), alias="Lab_Order_Code")
    trigger_codes: tuple[CodedElement, ...] = Field(default=(), alias="Trigger_Code")
    visit_datetime: str | None = Field(default=None, alias="Visit_DateTime")


class CaseReport(_ValueObject):
    """One canonical document: a single patient-result group of a message."""

    sending_application: str = Field(default="", alias="SendingApplication")
    provider: Provider | None = Field(default=None, alias="Provider")
    facility: Facility | None = Field(default=None, alias="Facility")
    patient: Patient = Field(..., alias="Patient")
    id: str | None = Field(default=None)

    def to_document(self) -> dict[str, Any]:
        """JSON-ready dict with the controller's key names; unset optionals omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
