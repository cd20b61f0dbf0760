"""Dialect strategy interface shared by the ECR and FHIR mappers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable

from .hl7.accessors import Hl7Message

DocumentSink = Callable[[dict[str, Any]], Any]


class MessageMapper(ABC):
    """Turns one accepted message into outbound documents.

    A mapper is chosen per message by the version dispatcher and is not shared
    between messages, so implementations may keep per-message state.
    """

    version: str = ""

    @abstractmethod
    def map_message(self, message: Hl7Message, sink: DocumentSink) -> int:
        """Map ``message`` and hand each finished document to ``sink``.

        Returns:
            The number of documents produced.
        """
