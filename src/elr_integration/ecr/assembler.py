"""Case-report document assembly.

Walks PatientResult -> OrderObservation -> Observation, calling the dialect
mapper for each node, and folds order-level data up into the patient and
document root:

  - Provider and Facility: the last order that carries one wins
  - Trigger_Code: every order's Reasons, in order-processing order
  - Visit_DateTime: the last order that carries a date

Each document is handed to the sink as soon as its group is complete, so a
later failure in the same message never retracts an earlier delivery.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..errors import MissingPatientIdentityError
from ..hl7.accessors import Hl7Message, PatientResult
from ..mapping import DocumentSink
from .models import CaseReport, Facility, LabOrder, Patient, Provider

if TYPE_CHECKING:
    from .mappers import EcrMessageMapper

logger = logging.getLogger(__name__)


class DocumentAssembler:
    """Build one CaseReport per patient-result group of a message."""

    def __init__(self, mapper: "EcrMessageMapper") -> None:
        self.mapper = mapper

    def assemble(self, message: Hl7Message, sink: DocumentSink) -> int:
        """Map every patient-result group and flush each document to ``sink``.

        Args:
            message: An accepted ORU^R01 message.
            sink: Called once per finished document with its JSON-ready dict.

        Returns:
            The number of documents produced.

        Raises:
            MissingSendingContextError: if MSH identifies no sender.
            OrderMappingError: on an order group without OBR.
            ResultMappingError: on an observation with an empty OBX-3.
            MissingPatientIdentityError: if no group yielded a document.
        """
        sending_application, sender = self.mapper.map_sending_context(message)

        produced = 0
        for index, group in enumerate(message.patient_results, start=1):
            patient = self.mapper.map_patient(group)
            if patient is None:
                logger.warning(
                    "Skipping patient result %d of message %s: no patient identifier or name",
                    index, message.control_id,
                )
                continue

            report = self._assemble_group(group, patient, sending_application, sender)
            produced += 1
            sink(report.to_document())

        if produced == 0:
            raise MissingPatientIdentityError(
                f"message {message.control_id!r} has no patient result with an identifiable patient"
            )
        logger.info("Assembled %d case report(s) from message %s", produced, message.control_id)
        return produced

    def _assemble_group(
        self,
        group: PatientResult,
        patient: Patient,
        sending_application: str,
        sender: Provider,
    ) -> CaseReport:
        provider: Provider | None = sender
        facility: Facility | None = None
        orders: list[LabOrder] = []
        triggers = []
        visit_datetime = None

        for order_group in group.orders:
            order = self.mapper.map_order(order_group)
            results = tuple(self.mapper.map_result(obs) for obs in order_group.observations)
            order = order.model_copy(update={"results": results})
            orders.append(order)

            if order.provider is not None:
                provider = order.provider
            if order.facility is not None:
                facility = order.facility
            if order.reasons:
                triggers.extend(order.reasons)
            if order.datetime is not None:
                visit_datetime = order.datetime

        patient = patient.model_copy(update={
            "lab_orders": tuple(orders),
            "trigger_codes": tuple(triggers),
            "visit_datetime": visit_datetime,
        })
        return CaseReport(
            sending_application=sending_application,
            provider=provider,
            facility=facility,
            patient=patient,
        )
