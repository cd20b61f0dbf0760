"""HL7 v2.5.1 ELR dialect."""

from __future__ import annotations

from ..hl7.accessors import Segment, hl7_datetime_to_iso
from .mappers import EcrMessageMapper


class V251EcrMapper(EcrMessageMapper):
    """ORU^R01 v2.5.1 (PATIENT_RESULT groups) to case report."""

    version = "2.5.1"

    def order_datetime(self, obr: Segment) -> str | None:
        # OBR-6 requested date/time
        return hl7_datetime_to_iso(obr.value(6))

    def result_datetime(self, obx: Segment) -> str | None:
        # observation, then reference-range effective date, then analysis
        for position in (14, 12, 19):
            iso = hl7_datetime_to_iso(obx.value(position))
            if iso:
                return iso
        return None
