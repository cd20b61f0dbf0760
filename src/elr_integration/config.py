"""Receiver configuration.

Defaults match a receiver deployed next to its collectors on localhost; the
environment variables below override them at startup:

  ECR_URL          case-report collector URL (ECR mode)
  FHIR_URL         FHIR collector URL (FHIR mode)
  PARSER_MODE      ECR or FHIR
  QUEUE_FILE       path of the delivery queue database
  REQUEST_TIMEOUT  seconds before an outbound POST is abandoned
  LOG_LEVEL        logging level name passed to configure_logging()
"""

from __future__ import annotations

import logging
import os
from typing import Literal, Mapping

from pydantic import BaseModel, Field, field_validator

ParserMode = Literal["ECR", "FHIR"]

CONTENT_TYPES: dict[str, str] = {
    "ECR":  "application/json",
    "FHIR": "application/fhir+json",
}

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class ReceiverConfig(BaseModel):
    """Process-wide settings for the receiver pipeline."""

    parser_mode: ParserMode = Field(default="FHIR", description="Output family: ECR or FHIR")
    ecr_url: str = Field(default="http://localhost:8888/ECR")
    fhir_url: str = Field(default="http://localhost:8080/fhir")
    queue_file: str = Field(default="queueELR", description="SQLite file backing the delivery queue")
    request_timeout: float | None = Field(default=None, gt=0)
    retry_startup_delay: float = Field(default=20.0, ge=0)
    retry_interval: float = Field(default=10.0, gt=0)
    remove_before_send: bool = Field(
        default=True,
        description="Remove a queued entry before redelivery (False: only after success)",
    )
    patient_id_style: Literal["list", "selected"] = Field(default="list")
    log_level: str = Field(default="INFO")

    @field_validator("parser_mode", mode="before")
    @classmethod
    def _upper_mode(cls, value: object) -> object:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("ecr_url", "fhir_url")
    @classmethod
    def _normalize_url(cls, value: str) -> str:
        return normalize_url(value)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: object) -> "ReceiverConfig":
        """Build a config from defaults, then the environment, then ``overrides``.

        Raises:
            pydantic.ValidationError: if a value is out of range or unknown.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for var, key in (
            ("ECR_URL", "ecr_url"),
            ("FHIR_URL", "fhir_url"),
            ("PARSER_MODE", "parser_mode"),
            ("QUEUE_FILE", "queue_file"),
            ("REQUEST_TIMEOUT", "request_timeout"),
            ("LOG_LEVEL", "log_level"),
        ):
            raw = env.get(var, "").strip()
            if raw:
                values[key] = raw
        values.update(overrides)
        return cls(**values)

    @property
    def destination_url(self) -> str:
        return self.ecr_url if self.parser_mode == "ECR" else self.fhir_url

    @property
    def content_type(self) -> str:
        return CONTENT_TYPES[self.parser_mode]


def normalize_url(url: str) -> str:
    """Add ``http://`` when no scheme is given and drop trailing slashes."""
    url = url.strip()
    if not url.startswith(("http://", "https://")):
        url = f"http://{url}"
    return url.rstrip("/")


def configure_logging(level: str | int = "INFO") -> None:
    logging.basicConfig(level=level.upper() if isinstance(level, str) else level, format=LOG_FORMAT)
