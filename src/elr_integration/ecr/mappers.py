"""Segment mappers shared by the case-report dialects.

``EcrMessageMapper`` holds the mapping rules common to every supported
version; the dialect subclasses in ``v251`` and ``v231`` override the hooks
that differ (name composition and which timestamp fields are read). Every
``map_*`` method is a pure function of one source group.
"""

from __future__ import annotations

import logging
from typing import Iterable

from ..errors import MissingSendingContextError, OrderMappingError, ResultMappingError
from ..hl7.accessors import (
    Address,
    Composite,
    Hl7Message,
    Observation,
    OrderObservation,
    PatientResult,
    PersonName,
    ProviderName,
    Segment,
    Telecom,
)
from ..mapping import DocumentSink, MessageMapper
from .assembler import DocumentAssembler
from .coding import PREFERRED_VOCABULARY, CodedElementResolver, merge_most_complete
from .identity import select_patient_identity
from .models import (
    CodedElement,
    Facility,
    Identifier,
    LabOrder,
    LabResult,
    Patient,
    PatientName,
    Provider,
)

logger = logging.getLogger(__name__)

PATIENT_ID_STYLES = ("list", "selected")
DEFAULT_ID_TYPE = "MR"
ORDERING_PROVIDER_ID_TYPE = "ORDPROVIDER"
APPFAC_ID_TYPE = "appfac"


class EcrMessageMapper(MessageMapper):
    """Base strategy for HL7 v2 ORU^R01 to case-report mapping."""

    # Race is written even when no repetition carried a code.
    always_report_race = True

    def __init__(
        self,
        patient_id_style: str = "list",
        resolver: CodedElementResolver | None = None,
    ) -> None:
        if patient_id_style not in PATIENT_ID_STYLES:
            raise ValueError(f"patient_id_style must be one of {PATIENT_ID_STYLES}, got {patient_id_style!r}")
        self.patient_id_style = patient_id_style
        self.resolver = resolver or CodedElementResolver(preferred_system=PREFERRED_VOCABULARY)

    def map_message(self, message: Hl7Message, sink: DocumentSink) -> int:
        return DocumentAssembler(self).assemble(message, sink)

    # ------------------------------------------------------------------
    # Dialect hooks
    # ------------------------------------------------------------------

    def patient_name(self, rep: Composite) -> PersonName:
        return rep.as_person_name()

    def order_datetime(self, obr: Segment) -> str | None:
        raise NotImplementedError

    def result_datetime(self, obx: Segment) -> str | None:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Sending context (MSH-3 / MSH-4)
    # ------------------------------------------------------------------

    def map_sending_context(self, message: Hl7Message) -> tuple[str, Provider]:
        """Return the SendingApplication text and the ``appfac`` provider.

        Raises:
            MissingSendingContextError: if MSH-3 and MSH-4 are both empty.
        """
        app = message.sending_application
        facility = message.sending_facility
        if not app.namespace and not facility.namespace:
            raise MissingSendingContextError(
                f"message {message.control_id!r} has no sending application or facility"
            )
        sending_application = " ".join(
            part for part in (app.namespace, app.universal_id, app.universal_id_type) if part
        )
        provider = Provider(
            id=Identifier(value=f"{app.namespace}|{facility.namespace}", type=APPFAC_ID_TYPE)
        )
        return sending_application, provider

    # ------------------------------------------------------------------
    # Patient (PID)
    # ------------------------------------------------------------------

    def map_patient(self, group: PatientResult) -> Patient | None:
        """Map the PID of one patient-result group.

        Returns:
            The patient, or None when the group carries neither an identifier
            nor a name; the caller skips such groups.
        """
        pid = group.pid
        if pid is None:
            return None

        cx_list = [rep.as_extended_id() for rep in pid.repetitions(3) + pid.repetitions(4)]
        names = [self.patient_name(rep) for rep in pid.repetitions(5)]
        identity = select_patient_identity(cx_list, names)
        if identity is None:
            logger.debug("PID carries neither an identifier nor a name")
            return None

        if self.patient_id_style == "selected":
            patient_id: tuple[Identifier, ...] | str = identity.identifier
        else:
            patient_id = tuple(
                Identifier(value=cx.id_number, type=cx.type_code or DEFAULT_ID_TYPE)
                for cx in cx_list
                if cx.id_number
            )

        given = identity.given
        if identity.middle:
            given = f"{given} {identity.middle}"

        race = merge_most_complete(rep.as_coded() for rep in pid.repetitions(10))
        if race.is_empty and not self.always_report_race:
            race = None
        ethnicity = merge_most_complete(rep.as_coded() for rep in pid.repetitions(22))

        return Patient(
            id=patient_id,
            name=PatientName(given=given, family=identity.family),
            birth_date=pid.value(7) or None,
            sex=pid.value(8),
            race=race,
            street_address=first_address(pid.repetitions(11)),
            preferred_language=self._coded(pid.first(15)),
            ethnicity=None if ethnicity.is_empty else ethnicity,
        )

    # ------------------------------------------------------------------
    # Lab order (ORC / OBR)
    # ------------------------------------------------------------------

    def map_order(self, order: OrderObservation) -> LabOrder:
        """Map one order group without its observations.

        Raises:
            OrderMappingError: if the group has no OBR segment.
        """
        obr = order.obr
        if obr is None:
            raise OrderMappingError("order group has no OBR segment")
        orc = order.orc

        service = self.resolver.resolve(obr.first(4).as_coded())
        reasons = tuple(
            resolution.to_element()
            for resolution in (self.resolver.resolve(rep.as_coded()) for rep in obr.repetitions(31))
            if resolution.succeeded
        )

        return LabOrder(
            system=service.system,
            code=service.code,
            display=service.display,
            provider=self._ordering_provider(obr, orc),
            facility=self._ordering_facility(orc),
            reasons=reasons or None,
            datetime=self.order_datetime(obr),
        )

    def _ordering_provider(self, obr: Segment, orc: Segment | None) -> Provider | None:
        reps = obr.repetitions(16)
        if not reps and orc is not None:
            reps = orc.repetitions(12)

        provider_id: Identifier | None = None
        name = ""
        for rep in reps:
            xcn = rep.as_provider_name()
            if xcn.id_number:
                provider_id = Identifier(value=xcn.id_number, type=ORDERING_PROVIDER_ID_TYPE)
            rep_name = compose_provider_name(xcn)
            if rep_name:
                name = rep_name
            if xcn.id_number and rep_name:
                break

        address = first_address(orc.repetitions(24)) if orc is not None else None
        if provider_id is None and not name and not address:
            return None
        return Provider(id=provider_id, name=name or None, address=address)

    def _ordering_facility(self, orc: Segment | None) -> Facility | None:
        if orc is None:
            return None

        name = org_id = None
        for rep in orc.repetitions(21):
            xon = rep.as_organization()
            if not xon.name:
                continue
            name = xon.name
            if xon.id_number:
                org_id = xon.id_number
                break

        phone = pick_phone(rep.as_telecom() for rep in orc.repetitions(23))
        address = first_address(orc.repetitions(22))
        if not (name or phone or address):
            return None
        return Facility(name=name, id=org_id, phone=phone, address=address)

    # ------------------------------------------------------------------
    # Lab result (OBX)
    # ------------------------------------------------------------------

    def map_result(self, observation: Observation) -> LabResult:
        """Map one OBX.

        Raises:
            ResultMappingError: if OBX-3 is empty in both encodings.
        """
        obx = observation.obx
        test = self.resolver.resolve(obx.first(3).as_coded())
        if not test.succeeded:
            raise ResultMappingError("OBX-3 observation identifier is empty")

        value = unit = None
        values = obx.repetitions(5)
        if obx.value(2) and values:
            value = str(values[0])
            unit = self._coded(obx.first(6))

        return LabResult(
            system=test.system,
            code=test.code,
            display=test.display,
            value=value,
            unit=unit,
            date=self.result_datetime(obx),
        )

    def _coded(self, rep: Composite) -> CodedElement | None:
        resolution = self.resolver.resolve(rep.as_coded())
        return resolution.to_element() if resolution.succeeded else None


# ------------------------------------------------------------------
# Composition rules
# ------------------------------------------------------------------

def compose_address(address: Address) -> str:
    """``street, city state zip`` with empty parts and their separators skipped."""
    text = address.street
    for sep, part in ((", ", address.city), (" ", address.state), (" ", address.zip_code)):
        if not part:
            continue
        text = f"{text}{sep}{part}" if text else part
    return text


def first_address(reps: Iterable[Composite]) -> str | None:
    for rep in reps:
        text = compose_address(rep.as_address())
        if text:
            return text
    return None


def compose_provider_name(xcn: ProviderName) -> str:
    parts = (xcn.prefix, xcn.given, xcn.middle, xcn.family, xcn.suffix)
    return " ".join(part for part in parts if part).strip()


def pick_phone(numbers: Iterable[Telecom]) -> str | None:
    """Choose one facility phone number from XTN repetitions.

    A complete structured number (country, area and local) wins at once, then
    the free-text number. A partial structured number is kept while later
    repetitions are scanned for something better.
    """
    phone = None
    for xtn in numbers:
        parts = (xtn.country_code, xtn.area_code, xtn.local_number)
        structured = "-".join(part for part in parts if part)
        if all(parts):
            return structured
        if xtn.any_text:
            return xtn.any_text
        if structured:
            phone = structured
    return phone
