"""HL7v2 ORU^R01 (Observation Result Unsolicited) message builder.

Builds laboratory result messages with any number of patient-result groups,
orders and observations. Field arguments are raw HL7 text, so composite
values are passed already delimited (``"12345^^^EMR&1.2.3&ISO^MR"``); use
``escape()`` for free text that may contain delimiters.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable


class ORUBuilder:
    """Build HL7v2 ORU^R01 lab result messages."""

    FIELD_SEP = "|"
    ENCODING_CHARS = "^~\\&"

    @classmethod
    def build_r01(
        cls,
        groups: Iterable[Iterable[str]],
        version: str = "2.5.1",
        sending_app: str = "LAB^2.16.840.1.113883.3.72^ISO",
        sending_facility: str = "LABFAC",
        receiving_app: str = "ELR",
        receiving_facility: str = "PHA",
        message_type: str = "ORU^R01^ORU_R01",
        control_id: str | None = None,
        timestamp: str | None = None,
    ) -> str:
        """Build an ORU^R01 message string.

        Args:
            groups: One iterable of segment strings per patient-result group,
                    typically ``[pid(...), orc(...), obr(...), obx(...)]``.
            version: MSH-12 version ID.
            message_type: Raw MSH-9 text.
            control_id: MSH-10; generated from the clock when omitted.
            timestamp: MSH-7; the current UTC time when omitted.

        Returns:
            CR-separated message text.
        """
        now = datetime.now(timezone.utc)
        ts = timestamp or now.strftime("%Y%m%d%H%M%S")
        msg_id = control_id or f"MSG{now.strftime('%Y%m%d%H%M%S%f')[:18]}"

        segments = [
            cls._msh(
                ts, msg_id, sending_app, sending_facility,
                receiving_app, receiving_facility, message_type, version,
            )
        ]
        for group in groups:
            segments.extend(group)
        return "\r".join(segments)

    # ------------------------------------------------------------------
    # Segments
    # ------------------------------------------------------------------

    @classmethod
    def pid(
        cls,
        identifiers: str = "",
        name: str = "",
        birth_date: str = "",
        sex: str = "",
        race: str = "",
        address: str = "",
        language: str = "",
        ethnicity: str = "",
        alternate_ids: str = "",
        external_id: str = "",
    ) -> str:
        return cls.segment("PID", {
            1: "1",
            2: external_id,
            3: identifiers,
            4: alternate_ids,
            5: name,
            7: birth_date,
            8: sex,
            10: race,
            11: address,
            15: language,
            22: ethnicity,
        })

    @classmethod
    def orc(
        cls,
        ordering_provider: str = "",
        facility_name: str = "",
        facility_address: str = "",
        facility_phone: str = "",
        provider_address: str = "",
    ) -> str:
        return cls.segment("ORC", {
            1: "RE",
            12: ordering_provider,
            21: facility_name,
            22: facility_address,
            23: facility_phone,
            24: provider_address,
        })

    @classmethod
    def obr(
        cls,
        service: str = "",
        requested_at: str = "",
        observed_at: str = "",
        ordering_provider: str = "",
        reasons: str = "",
        set_id: int = 1,
    ) -> str:
        return cls.segment("OBR", {
            1: str(set_id),
            4: service,
            6: requested_at,
            7: observed_at,
            16: ordering_provider,
            25: "F",
            31: reasons,
        })

    @classmethod
    def obx(
        cls,
        code: str = "",
        value: str = "",
        value_type: str = "ST",
        units: str = "",
        status: str = "F",
        observed_at: str = "",
        analyzed_at: str = "",
        set_id: int = 1,
    ) -> str:
        return cls.segment("OBX", {
            1: str(set_id),
            2: value_type if value else "",
            3: code,
            5: value,
            6: units,
            11: status,
            14: observed_at,
            19: analyzed_at,
        })

    @classmethod
    def nte(cls, text: str, set_id: int = 1) -> str:
        return cls.segment("NTE", {1: str(set_id), 3: cls.escape(text)})

    @classmethod
    def segment(cls, name: str, fields: dict[int, str]) -> str:
        """Lay out ``fields`` by position, trimming trailing empty fields."""
        last = max((pos for pos, val in fields.items() if val), default=0)
        values = [fields.get(pos, "") for pos in range(1, last + 1)]
        return cls.FIELD_SEP.join([name, *values])

    @staticmethod
    def escape(text: str) -> str:
        """Escape HL7 delimiters in free text and flatten line breaks."""
        return (
            text.replace("\\", "\\E\\")
            .replace("|", "\\F\\")
            .replace("^", "\\S\\")
            .replace("&", "\\T\\")
            .replace("~", "\\R\\")
            .replace("\r", " ")
            .replace("\n", " ")
        )

    @classmethod
    def _msh(
        cls,
        ts: str,
        msg_id: str,
        sending_app: str,
        sending_facility: str,
        receiving_app: str,
        receiving_facility: str,
        message_type: str,
        version: str,
    ) -> str:
        sep = cls.FIELD_SEP
        enc = cls.ENCODING_CHARS
        return (
            f"MSH{sep}{enc}{sep}{sending_app}{sep}{sending_facility}{sep}"
            f"{receiving_app}{sep}{receiving_facility}{sep}{ts}{sep}{sep}"
            f"{message_type}{sep}{msg_id}{sep}P{sep}{version}"
        )
