"""Process-wide pipeline wiring."""

from __future__ import annotations

import logging

import requests

from ..config import ReceiverConfig, configure_logging
from ..delivery.forwarder import Forwarder
from ..delivery.queue import DeliveryQueue
from ..delivery.retry import RetryDriver

logger = logging.getLogger(__name__)


class PipelineContext:
    """Owns the queue, HTTP session, forwarder and retry driver for one process."""

    def __init__(
        self,
        config: ReceiverConfig,
        queue: DeliveryQueue,
        forwarder: Forwarder,
        retry_driver: RetryDriver,
    ) -> None:
        self.config = config
        self.queue = queue
        self.forwarder = forwarder
        self.retry_driver = retry_driver

    @classmethod
    def from_config(
        cls,
        config: ReceiverConfig,
        session: requests.Session | None = None,
    ) -> "PipelineContext":
        configure_logging(config.log_level)
        queue = DeliveryQueue(config.queue_file)
        forwarder = Forwarder(
            config.destination_url,
            queue,
            session=session,
            content_type=config.content_type,
            timeout=config.request_timeout,
            remove_before_send=config.remove_before_send,
        )
        retry_driver = RetryDriver(
            forwarder,
            startup_delay=config.retry_startup_delay,
            interval=config.retry_interval,
        )
        logger.info(
            "Pipeline ready: mode=%s destination=%s queue=%s",
            config.parser_mode, config.destination_url, config.queue_file,
        )
        return cls(config, queue, forwarder, retry_driver)

    def start(self) -> None:
        self.retry_driver.start()

    def close(self) -> None:
        self.retry_driver.stop()
        self.queue.close()

    def __enter__(self) -> "PipelineContext":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
