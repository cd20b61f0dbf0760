"""Shared pytest fixtures, message factories, and test markers.

Test tiers
----------
  unit        Fast, fully offline, zero external dependencies.
              Always run.

  integration Mock the downstream collector over HTTP. Always run.
              Validates receive -> map -> POST -> queue -> drain without
              real network calls.

  quality     Deep validation: FHIR bundle rules, HL7 field-level,
              property-based (Hypothesis). Always run offline.

Run specific tiers:
  pytest tests/unit
  pytest tests/integration tests/quality
  pytest tests/ -v                                    # everything
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from elr_integration.config import ReceiverConfig
from elr_integration.delivery.queue import DeliveryQueue
from elr_integration.hl7.accessors import Hl7Message
from elr_integration.hl7.oru_builder import ORUBuilder


# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------

def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast offline unit tests")
    config.addinivalue_line("markers", "integration: mock-based integration tests")
    config.addinivalue_line("markers", "quality: deep-validation and property-based tests")


# ---------------------------------------------------------------------------
# Segment building blocks
# ---------------------------------------------------------------------------

COVID_TEST = "94500-6^SARS-CoV-2 RNA Resp Ql NAA+probe^LN"
GLUCOSE_TEST = "2345-7^Glucose [Mass/volume] in Serum or Plasma^LN"

PID_JANE = ORUBuilder.pid(
    identifiers="MRN-1^^^HOSP^MR~10023^^^EMR&2.16.840.1.113883.3.72&ISO^PI",
    name="Doe^Jane^Quinn",
    birth_date="19800214",
    sex="F",
    race="2106-3^White^CDCREC",
    address="1 Main St^^Springfield^IL^62704",
    language="eng^English^ISO6392",
    ethnicity="2186-5^Not Hispanic or Latino^CDCREC",
)

PID_JOHN = ORUBuilder.pid(
    identifiers="55501^^^HOSP^MR",
    name="Roe^John",
    sex="M",
)

PID_EMPTY = ORUBuilder.pid(sex="U")

ORC_CLINIC = ORUBuilder.orc(
    facility_name="Springfield Clinic^^4455",
    facility_address="200 Oak Ave^^Springfield^IL^62701",
    facility_phone="^WPN^PH^^1^217^5550100",
    provider_address="300 Elm St^^Springfield^IL^62702",
)

OBR_COVID = ORUBuilder.obr(
    service=COVID_TEST,
    requested_at="20240715093000",
    observed_at="20240715080000",
    ordering_provider="1234^Smith^John^Q^Jr^Dr",
    reasons="U07.1^COVID-19^I10",
)

OBX_DETECTED = ORUBuilder.obx(
    code=COVID_TEST,
    value="260373001^Detected^SCT",
    value_type="CWE",
    observed_at="20240715113000",
)

OBX_GLUCOSE = ORUBuilder.obx(
    code=GLUCOSE_TEST,
    value="95",
    value_type="NM",
    units="mg/dL^milligrams per deciliter^UCUM",
    observed_at="20240715113000",
    set_id=2,
)


def jane_group() -> list[str]:
    return [PID_JANE, ORC_CLINIC, OBR_COVID, OBX_DETECTED, OBX_GLUCOSE]


def build_message(groups: list[list[str]] | None = None, version: str = "2.5.1", **kwargs) -> str:
    """ORU^R01 text with fixed control ID and timestamp."""
    kwargs.setdefault("control_id", "CTRL0001")
    kwargs.setdefault("timestamp", "20240715120000")
    return ORUBuilder.build_r01(groups if groups is not None else [jane_group()], version=version, **kwargs)


def parse_message(groups: list[list[str]] | None = None, version: str = "2.5.1", **kwargs) -> Hl7Message:
    return Hl7Message.parse(build_message(groups, version=version, **kwargs))


# ---------------------------------------------------------------------------
# Message fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def v251_message() -> Hl7Message:
    return parse_message()


@pytest.fixture
def v231_message() -> Hl7Message:
    return parse_message(version="2.3.1")


@pytest.fixture
def v23_message() -> Hl7Message:
    return parse_message(version="2.3", message_type="ORU^R01")


# ---------------------------------------------------------------------------
# Delivery fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def queue_path(tmp_path: Path) -> Path:
    return tmp_path / "queueELR"


@pytest.fixture
def delivery_queue(queue_path: Path) -> DeliveryQueue:
    return DeliveryQueue(queue_path)


@pytest.fixture
def ecr_config(queue_path: Path) -> ReceiverConfig:
    return ReceiverConfig(
        parser_mode="ECR",
        ecr_url="http://collector.test/ECR",
        queue_file=str(queue_path),
    )


@pytest.fixture
def fhir_config(queue_path: Path) -> ReceiverConfig:
    return ReceiverConfig(
        parser_mode="FHIR",
        fhir_url="http://collector.test/fhir",
        queue_file=str(queue_path),
    )


@pytest.fixture
def mock_collector_session() -> MagicMock:
    """A requests.Session stand-in whose POSTs all return 201."""
    session = MagicMock()
    session.post.return_value = MagicMock(status_code=201)
    return session
