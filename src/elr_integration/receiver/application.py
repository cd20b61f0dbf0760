"""Per-message entry point of the receiver.

The transport layer hands each inbound message to ``ReceiverApplication``
and builds its acknowledgment from the returned ``ProcessingResult``.
Expected rejections become results; delivery failures never do, because
the forwarder has already queued the document for retry. A queue that
cannot store the document is reported as an internal error.
"""

from __future__ import annotations

import logging
import sqlite3

from pydantic import BaseModel, ConfigDict, Field

from ..errors import ElrError, ErrorKind, MalformedMessageError
from ..hl7.accessors import Hl7Message
from .context import PipelineContext
from .dispatcher import VersionDispatcher

logger = logging.getLogger(__name__)


class ProcessingResult(BaseModel):
    """Outcome of one message."""

    model_config = ConfigDict(frozen=True)

    error: ErrorKind = Field(default=ErrorKind.NOERROR)
    documents: int = Field(default=0, description="Documents handed to the forwarder")
    detail: str = Field(default="")

    @property
    def ok(self) -> bool:
        return self.error is ErrorKind.NOERROR


class ReceiverApplication:
    """Dispatch, map and forward inbound lab-result messages."""

    def __init__(
        self,
        context: PipelineContext,
        dispatcher: VersionDispatcher | None = None,
    ) -> None:
        self.context = context
        self.dispatcher = dispatcher or VersionDispatcher.for_mode(
            context.config.parser_mode,
            patient_id_style=context.config.patient_id_style,
        )

    def can_process(self, message: Hl7Message) -> bool:
        return self.dispatcher.can_process(message)

    def process_message(self, message: Hl7Message) -> ProcessingResult:
        try:
            mapper = self.dispatcher.dispatch(message)
            produced = mapper.map_message(message, self.context.forwarder.deliver)
        except ElrError as exc:
            logger.warning("Rejected message %s (%s): %s", message.control_id, exc.kind.value, exc)
            return ProcessingResult(error=exc.kind, detail=str(exc))
        except sqlite3.Error as exc:
            logger.error("Delivery queue failed while processing message %s: %s", message.control_id, exc)
            return ProcessingResult(error=ErrorKind.INTERNAL, detail=f"delivery queue unavailable: {exc}")
        return ProcessingResult(documents=produced)

    def receive(self, raw: str | bytes) -> ProcessingResult:
        """Parse ``raw`` message text and process it."""
        try:
            message = Hl7Message.parse(raw)
        except MalformedMessageError as exc:
            logger.warning("Rejected unparseable message: %s", exc)
            return ProcessingResult(error=exc.kind, detail=str(exc))
        return self.process_message(message)
