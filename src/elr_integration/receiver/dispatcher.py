"""Version and message-type dispatch.

Each parser mode supports a fixed table of HL7 versions, one mapper class per
version. ``dispatch`` hands back a fresh mapper for the message instead of
binding one to shared state, so concurrent connections never race on it.
"""

from __future__ import annotations

import functools
import logging
from typing import Callable, Mapping

from ..ecr.v231 import V231EcrMapper
from ..ecr.v251 import V251EcrMapper
from ..errors import UnsupportedMessageError
from ..fhir.bundle import Stu3BundleMapper
from ..hl7.accessors import Hl7Message
from ..mapping import MessageMapper

logger = logging.getLogger(__name__)

MapperFactory = Callable[[], MessageMapper]

EXPECTED_MESSAGE_TYPE = ("ORU", "R01", "ORU_R01")


class VersionDispatcher:
    """Select the dialect mapper for an inbound message."""

    def __init__(self, mappers: Mapping[str, MapperFactory]) -> None:
        self._mappers = {version.lower(): factory for version, factory in mappers.items()}

    @classmethod
    def for_mode(cls, parser_mode: str, patient_id_style: str = "list") -> "VersionDispatcher":
        """Build the dispatcher for ``ECR`` (2.5.1, 2.3.1) or ``FHIR`` (2.3)."""
        mode = parser_mode.upper()
        if mode == "ECR":
            return cls({
                "2.5.1": functools.partial(V251EcrMapper, patient_id_style=patient_id_style),
                "2.3.1": functools.partial(V231EcrMapper, patient_id_style=patient_id_style),
            })
        if mode == "FHIR":
            return cls({"2.3": Stu3BundleMapper})
        raise ValueError(f"parser_mode must be ECR or FHIR, got {parser_mode!r}")

    @property
    def supported_versions(self) -> list[str]:
        return sorted(self._mappers)

    def can_process(self, message: Hl7Message) -> bool:
        return self._rejection(message) is None

    def dispatch(self, message: Hl7Message) -> MessageMapper:
        """Return a new mapper for ``message``.

        Raises:
            UnsupportedMessageError: if the version or message type is not handled.
        """
        reason = self._rejection(message)
        if reason is not None:
            raise UnsupportedMessageError(reason)
        return self._mappers[message.version.lower()]()

    def _rejection(self, message: Hl7Message) -> str | None:
        version = message.version
        if version.lower() not in self._mappers:
            return f"HL7 version {version!r} is not supported (supported: {', '.join(self.supported_versions)})"

        declared = (message.message_type, message.trigger_event, message.message_structure)
        for actual, expected in zip(declared, EXPECTED_MESSAGE_TYPE):
            if actual is not None and actual.upper() != expected:
                return f"message type {'^'.join(part or '' for part in declared)!r} is not ORU^R01"
        return None
