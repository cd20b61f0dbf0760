"""FHIR STU3 message Bundle mapper for HL7 v2.3 lab results.

Each RESPONSE group of an ORU^R01 becomes one ``Bundle`` of type
``message`` holding a MessageHeader, the Patient and one Observation per OBX.
Bundles are plain dicts validated offline before they leave the mapper.

FHIR version note:
  Resources follow the STU3 (3.0.x) shapes: ``Observation.comment`` and
  ``MessageHeader.event`` as a single Coding, not the R4 equivalents.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any

from ..ecr.coding import CodedElementResolver
from ..ecr.identity import select_patient_identity
from ..errors import ElrError, MissingPatientIdentityError
from ..hl7.accessors import (
    Composite,
    HierarchicDesignator,
    Hl7Message,
    Observation,
    PatientResult,
    hl7_datetime_to_iso,
)
from ..mapping import DocumentSink, MessageMapper

logger = logging.getLogger(__name__)


_IDENTIFIER_TYPE_SYSTEM = "http://hl7.org/fhir/v2/0203"
_MESSAGE_EVENT_SYSTEM   = "http://hl7.org/fhir/message-events"
_DEFAULT_EVENT = {
    "system":  _MESSAGE_EVENT_SYSTEM,
    "code":    "observation-provide",
    "display": "Observation-provide",
}

# HL7 v2 table 0396 names for the vocabularies lab feeds actually use
CODING_SYSTEMS: dict[str, str] = {
    "LN":   "http://loinc.org",
    "SCT":  "http://snomed.info/sct",
    "UCUM": "http://unitsofmeasure.org",
    "ICD10CM": "http://hl7.org/fhir/sid/icd-10-cm",
}

GENDER_CODES: dict[str, str] = {"F": "female", "M": "male", "O": "other"}

OBSERVATION_STATUS: dict[str, str] = {
    "F": "final",
    "C": "amended",
    "X": "cancelled",
    "P": "preliminary",
}

_VALID_OBSERVATION_STATUSES = {
    "registered", "preliminary", "final", "amended",
    "corrected", "cancelled", "entered-in-error", "unknown",
}
_FHIR_DATE_RE      = re.compile(r"^\d{4}(-\d{2}(-\d{2})?)?$")
_FHIR_REFERENCE_RE = re.compile(r"^[A-Z][A-Za-z]+/.+$")
_HL7_NUMERIC_RE    = re.compile(r"^[+-]?\d*\.?\d+$")


class FHIRValidationError(ElrError, ValueError):
    """Raised when a Bundle dict fails FHIR STU3 message validation."""


class Stu3BundleMapper(MessageMapper):
    """Map HL7 v2.3 ORU^R01 messages to FHIR STU3 message bundles."""

    version = "2.3"

    def __init__(self, resolver: CodedElementResolver | None = None) -> None:
        self.resolver = resolver or CodedElementResolver()

    def map_message(self, message: Hl7Message, sink: DocumentSink) -> int:
        header = self.message_header(message)
        produced = 0
        for index, group in enumerate(message.patient_results, start=1):
            bundle = self.bundle_for(group, header)
            if bundle is None:
                logger.warning(
                    "Skipping response %d of message %s: no patient identity",
                    index, message.control_id,
                )
                continue
            produced += 1
            sink(bundle)

        if produced == 0:
            raise MissingPatientIdentityError(
                f"message {message.control_id!r} has no response with an identifiable patient"
            )
        return produced

    def bundle_for(self, group: PatientResult, header: dict[str, Any]) -> dict[str, Any] | None:
        """Build and validate the Bundle for one RESPONSE group.

        Returns:
            The bundle, or None when the group has no usable patient.

        Raises:
            FHIRValidationError: if the constructed bundle fails validation.
        """
        patient = self.patient(group)
        if patient is None:
            return None

        entries: list[dict[str, Any]] = [{"resource": dict(header)}, {"resource": patient}]
        for order in group.orders:
            for obs in order.observations:
                observation = self.observation(obs, patient.get("id"))
                if observation is not None:
                    entries.append({"resource": observation})

        bundle = {"resourceType": "Bundle", "type": "message", "entry": entries}
        Stu3BundleMapper.validate_message_bundle(bundle)
        return bundle

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    def message_header(self, message: Hl7Message) -> dict[str, Any]:
        event = dict(_DEFAULT_EVENT)
        if message.trigger_event:
            event = {"code": message.trigger_event}

        header: dict[str, Any] = {
            "resourceType": "MessageHeader",
            "event": event,
            "timestamp": (
                hl7_datetime_to_iso(message.message_datetime)
                or datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
            ),
        }

        destination = {}
        name = _hd_value(message.receiving_application)
        endpoint = _hd_value(message.receiving_facility)
        if name:
            destination["name"] = name
        if endpoint:
            destination["endpoint"] = endpoint
        if destination:
            header["destination"] = [destination]

        source = _hd_value(message.sending_application)
        if source:
            header["source"] = {"endpoint": source}
        return header

    def patient(self, group: PatientResult) -> dict[str, Any] | None:
        pid = group.pid
        if pid is None:
            return None

        external = pid.first(2)
        if external:
            patient_id = external.component(1)
            if not patient_id:
                return None
        else:
            identity = select_patient_identity(
                [rep.as_extended_id() for rep in pid.repetitions(3)],
                [rep.as_person_name() for rep in pid.repetitions(5)],
            )
            if identity is None:
                return None
            patient_id = identity.identifier

        resource: dict[str, Any] = {"resourceType": "Patient"}
        if patient_id:
            resource["id"] = patient_id

        identifiers = [_identifier(rep) for rep in pid.repetitions(3)]
        identifiers = [ident for ident in identifiers if ident]
        if identifiers:
            resource["identifier"] = identifiers

        for rep in pid.repetitions(5):
            xpn = rep.as_person_name()
            if not (xpn.family or xpn.given):
                continue
            name: dict[str, Any] = {}
            if xpn.family:
                name["family"] = xpn.family
            if xpn.given:
                name["given"] = [xpn.given]
            resource["name"] = [name]
            break

        birth_date = _fhir_date(pid.value(7))
        if birth_date:
            resource["birthDate"] = birth_date

        sex = pid.value(8)
        if sex:
            resource["gender"] = GENDER_CODES.get(sex, "unknown")
        return resource

    def observation(self, obs: Observation, patient_id: str | None) -> dict[str, Any] | None:
        """Map one OBX; None when its result status has no FHIR equivalent."""
        obx = obs.obx
        resource: dict[str, Any] = {"resourceType": "Observation"}

        status = obx.value(11)
        if status:
            if status not in OBSERVATION_STATUS:
                logger.error("Skipping OBX with unsupported result status %r", status)
                return None
            resource["status"] = OBSERVATION_STATUS[status]

        resource["code"] = self._codeable_concept(obx.first(3))
        if patient_id:
            resource["subject"] = {"reference": f"Patient/{patient_id}"}

        effective = hl7_datetime_to_iso(obx.value(14))
        if effective:
            resource["effectiveDateTime"] = effective

        value_type = obx.value(2)
        values = obx.repetitions(5)
        if value_type and values:
            raw = str(values[0])
            quantity = _quantity(raw, obx.first(6)) if value_type == "NM" else None
            if quantity is not None:
                resource["valueQuantity"] = quantity
            else:
                resource["valueString"] = raw

        comments = [
            str(rep)
            for note in obs.notes
            for rep in note.repetitions(3)
            if str(rep)
        ]
        if comments:
            resource["comment"] = ". ".join(comments)
        return resource

    def _codeable_concept(self, rep: Composite) -> dict[str, Any]:
        resolution = self.resolver.resolve(rep.as_coded())
        coding = {}
        if resolution.system:
            coding["system"] = CODING_SYSTEMS.get(resolution.system, resolution.system)
        if resolution.code:
            coding["code"] = resolution.code
        if resolution.display:
            coding["display"] = resolution.display
        return {"coding": [coding]} if coding else {}

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def validate_message_bundle(bundle: dict) -> None:
        """Validate a message Bundle dict against the STU3 rules we rely on.

        Checks enforced (all offline):
          - resourceType is 'Bundle' and type is 'message'
          - the first entry is a MessageHeader with an event and timestamp
          - a Patient entry follows the header
          - Observation status codes are valid STU3 codes
          - Observation subject references match 'ResourceType/id'
          - Patient.birthDate, if present, is a FHIR date

        Raises:
            FHIRValidationError: with a descriptive message listing every error.
        """
        errors: list[str] = []

        if bundle.get("resourceType") != "Bundle":
            errors.append(f"resourceType must be 'Bundle', got {bundle.get('resourceType')!r}")
        if bundle.get("type") != "message":
            errors.append(f"type must be 'message', got {bundle.get('type')!r}")

        resources = [entry.get("resource", {}) for entry in bundle.get("entry", [])]
        if not resources or resources[0].get("resourceType") != "MessageHeader":
            errors.append("entry[0] must be a MessageHeader")
        else:
            header = resources[0]
            if not header.get("event"):
                errors.append("MessageHeader.event is required")
            if not header.get("timestamp"):
                errors.append("MessageHeader.timestamp is required")

        if len(resources) < 2 or resources[1].get("resourceType") != "Patient":
            errors.append("entry[1] must be a Patient")
        else:
            birth_date = resources[1].get("birthDate")
            if birth_date and not _FHIR_DATE_RE.match(birth_date):
                errors.append(f"Patient.birthDate {birth_date!r} must be a FHIR date")

        for i, resource in enumerate(resources[2:], start=2):
            if resource.get("resourceType") != "Observation":
                errors.append(f"entry[{i}] must be an Observation, got {resource.get('resourceType')!r}")
                continue
            status = resource.get("status")
            if status and status not in _VALID_OBSERVATION_STATUSES:
                errors.append(f"entry[{i}].status {status!r} is not a valid STU3 code")
            ref = resource.get("subject", {}).get("reference")
            if ref is not None and not _FHIR_REFERENCE_RE.match(ref):
                errors.append(f"entry[{i}].subject.reference {ref!r} must match 'ResourceType/id'")

        if errors:
            bullet_list = "\n  - ".join(errors)
            raise FHIRValidationError(
                f"FHIR STU3 message Bundle validation failed ({len(errors)} error(s)):\n  - {bullet_list}"
            )


# ------------------------------------------------------------------
# Private helpers
# ------------------------------------------------------------------

def _hd_value(hd: HierarchicDesignator) -> str:
    return hd.universal_id or hd.namespace or hd.universal_id_type


def _identifier(rep: Composite) -> dict[str, Any]:
    cx = rep.as_extended_id()
    identifier: dict[str, Any] = {}
    if cx.id_number:
        identifier["value"] = cx.id_number
    if cx.type_code:
        identifier["type"] = {
            "coding": [{"system": _IDENTIFIER_TYPE_SYSTEM, "code": cx.type_code}]
        }
    return identifier


def _fhir_date(value: str) -> str | None:
    iso = hl7_datetime_to_iso(value)
    return iso[:10] if iso else None


def _quantity(raw: str, units: Composite) -> dict[str, Any] | None:
    number = float(raw) if _HL7_NUMERIC_RE.match(raw) else None
    if number is None or not math.isfinite(number):
        logger.warning("NM observation value %r is not numeric; reporting as text", raw)
        return None
    quantity: dict[str, Any] = {"value": number}
    unit_code = units.component(1)
    unit_system = units.component(3)
    if unit_code:
        quantity["unit"] = unit_code
        quantity["code"] = unit_code
    if unit_system:
        quantity["system"] = CODING_SYSTEMS.get(unit_system, unit_system)
    return quantity
