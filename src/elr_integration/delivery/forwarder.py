"""HTTP forwarder with enqueue-on-failure.

``send`` POSTs one document to the collector. Anything other than 200/201,
including a transport error, moves the exact serialized bytes into the
delivery queue so the retry driver can replay them later. Delivery is
therefore at-least-once: a document is never silently dropped, but the
collector may see it twice.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from typing import Any

import requests

from ..errors import DeliveryError
from .queue import DeliveryQueue

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = frozenset({200, 201})


class Forwarder:
    """POST documents to one destination, queueing whatever fails."""

    def __init__(
        self,
        destination_url: str,
        queue: DeliveryQueue,
        session: requests.Session | None = None,
        content_type: str = "application/json",
        timeout: float | None = None,
        remove_before_send: bool = True,
    ) -> None:
        self.destination_url = destination_url.rstrip("/")
        self.queue = queue
        self._session = session or requests.Session()
        self.content_type = content_type
        self.timeout = timeout
        self.remove_before_send = remove_before_send

    # ------------------------------------------------------------------
    # Foreground path
    # ------------------------------------------------------------------

    def send(self, document: dict[str, Any]) -> None:
        """Assign an ``id`` if absent, serialize and POST.

        Raises:
            DeliveryError: after the serialized document has been enqueued.
            sqlite3.Error: if the POST failed and the queue rejected the body.
        """
        document.setdefault("id", uuid.uuid4().hex)
        body = serialize(document)
        status = self._post(body)
        if status in SUCCESS_STATUSES:
            logger.info("Delivered document %s to %s (HTTP %s)", document["id"], self.destination_url, status)
            return

        try:
            self.queue.enqueue(body)
        except sqlite3.Error:
            logger.error("Document %s could not be delivered or queued; it is lost", document["id"])
            raise
        logger.warning(
            "Delivery of document %s to %s failed (HTTP %s); queued for retry",
            document["id"], self.destination_url, status,
        )
        raise DeliveryError(
            f"POST {self.destination_url} returned {status}; document queued", status_code=status
        )

    def deliver(self, document: dict[str, Any]) -> bool:
        """Send ``document``; a failure is already queued, so report it as False."""
        try:
            self.send(document)
        except DeliveryError:
            return False
        return True

    # ------------------------------------------------------------------
    # Retry path
    # ------------------------------------------------------------------

    def drain(self) -> int:
        """Attempt redelivery of the oldest queued document.

        With ``remove_before_send`` (the default) the entry is removed before
        the attempt and re-enqueued at the tail if it fails. Otherwise it is
        removed only after a successful POST and stays at the head on failure.
        Entries that do not decode as JSON are dropped.

        Returns:
            The number of entries left in the queue.
        """
        if self.queue.is_empty():
            return 0

        body = self.queue.peek_oldest()
        document = deserialize(body)

        if document is None:
            self.queue.remove_oldest()
            logger.error("Dropped undecodable queue entry (%d bytes)", len(body))
        elif self.remove_before_send:
            self.queue.remove_oldest()
            try:
                self.send(document)
            except DeliveryError:
                # send() has already re-enqueued the bytes at the tail
                logger.debug("Document %s went back to the queue", document.get("id"))
        else:
            status = self._post(serialize(document))
            if status in SUCCESS_STATUSES:
                self.queue.remove_oldest()
                logger.info("Redelivered document %s (HTTP %s)", document.get("id"), status)
            else:
                logger.warning("Redelivery of document %s failed (HTTP %s)", document.get("id"), status)

        return self.queue.size()

    def _post(self, body: bytes) -> int | None:
        logger.debug("POST %s: %s", self.destination_url, body)
        try:
            response = self._session.post(
                self.destination_url,
                data=body,
                headers={"Content-Type": self.content_type},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("POST %s failed: %s", self.destination_url, exc)
            return None
        return response.status_code


def serialize(document: dict[str, Any]) -> bytes:
    return json.dumps(document, allow_nan=False).encode("utf-8")


def deserialize(body: bytes) -> dict[str, Any] | None:
    try:
        document = json.loads(body.decode("utf-8"), parse_constant=_reject_constant)
    except ValueError:
        return None
    return document if isinstance(document, dict) else None


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")
