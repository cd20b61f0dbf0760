"""HL7 v2.3.1 ELR dialect."""

from __future__ import annotations

from ..hl7.accessors import Composite, PersonName, Segment, hl7_datetime_to_iso
from .mappers import EcrMessageMapper


class V231EcrMapper(EcrMessageMapper):
    """ORU^R01 v2.3.1 to case report.

    Differs from 2.5.1 in three places: the family name carries its last-name
    prefix, the order date is OBR-7 and only OBX-14 dates a result. Race is
    reported only when a repetition carried a code.
    """

    version = "2.3.1"
    always_report_race = False

    def patient_name(self, rep: Composite) -> PersonName:
        name = rep.as_person_name()
        if name.family_prefix:
            family = " ".join(part for part in (name.family_prefix, name.family) if part)
            name = name._replace(family=family)
        return name

    def order_datetime(self, obr: Segment) -> str | None:
        return hl7_datetime_to_iso(obr.value(7))

    def result_datetime(self, obx: Segment) -> str | None:
        return hl7_datetime_to_iso(obx.value(14))
