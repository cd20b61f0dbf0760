"""Integration test: HL7v2 ORU^R01 → mapper → mock collector → queue → drain.

Flow: raw message text → ReceiverApplication.receive()
      → version dispatch → case report / FHIR bundle
      → POST to a requests_mock collector
      → (on failure) durable queue → RetryDriver.tick() redelivery
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterator

import pytest
import requests_mock as req_mock

from elr_integration.config import ReceiverConfig
from elr_integration.errors import ErrorKind
from elr_integration.receiver.application import ReceiverApplication
from elr_integration.receiver.context import PipelineContext
from tests.conftest import OBR_COVID, OBX_DETECTED, PID_EMPTY, PID_JOHN, build_message, jane_group

pytestmark = pytest.mark.integration

ECR_URL = "http://collector.test/ECR"
FHIR_URL = "http://collector.test/fhir"


@pytest.fixture
def ecr_pipeline(ecr_config: ReceiverConfig) -> Iterator[PipelineContext]:
    context = PipelineContext.from_config(ecr_config)
    yield context
    context.close()


@pytest.fixture
def fhir_pipeline(fhir_config: ReceiverConfig) -> Iterator[PipelineContext]:
    context = PipelineContext.from_config(fhir_config)
    yield context
    context.close()


class TestEcrFlow:
    """v2.5.1 / v2.3.1 → case report JSON → collector."""

    def test_v251_document_delivered(self, ecr_pipeline: PipelineContext) -> None:
        with req_mock.Mocker() as m:
            m.post(ECR_URL, status_code=201)
            result = ReceiverApplication(ecr_pipeline).receive(build_message())
            doc = m.last_request.json()
            content_type = m.last_request.headers["Content-Type"]

        assert result.ok and result.documents == 1
        assert content_type == "application/json"
        assert doc["id"]
        assert doc["SendingApplication"] == "LAB 2.16.840.1.113883.3.72 ISO"
        assert doc["Facility"] == {
            "Name": "Springfield Clinic",
            "ID": "4455",
            "Phone": "1-217-5550100",
            "Address": "200 Oak Ave, Springfield IL 62701",
        }
        patient = doc["Patient"]
        assert patient["Street_Address"] == "1 Main St, Springfield IL 62704"
        assert patient["Preferred_Language"] == {"System": "ISO6392", "Code": "eng", "Display": "English"}
        assert patient["Lab_Order_Code"][0]["DateTime"] == "2024-07-15T09:30:00"
        assert ecr_pipeline.queue.is_empty()

    def test_v231_document_uses_observation_dates(self, ecr_pipeline: PipelineContext) -> None:
        with req_mock.Mocker() as m:
            m.post(ECR_URL, status_code=200)
            result = ReceiverApplication(ecr_pipeline).receive(build_message(version="2.3.1"))
            doc = m.last_request.json()

        assert result.ok
        order = doc["Patient"]["Lab_Order_Code"][0]
        assert order["DateTime"] == "2024-07-15T08:00:00"
        assert order["Laboratory_Results"][0]["Date"] == "2024-07-15T11:30:00"

    def test_one_post_per_patient_result(self, ecr_pipeline: PipelineContext) -> None:
        groups = [jane_group(), [PID_EMPTY, OBR_COVID, OBX_DETECTED], [PID_JOHN, OBR_COVID, OBX_DETECTED]]
        with req_mock.Mocker() as m:
            m.post(ECR_URL, status_code=201)
            result = ReceiverApplication(ecr_pipeline).receive(build_message(groups))
            bodies = [r.json() for r in m.request_history]

        assert result.documents == 2
        assert [b["Patient"]["Name"]["family"] for b in bodies] == ["Doe", "Roe"]
        assert bodies[0]["id"] != bodies[1]["id"]


class TestFhirFlow:
    def test_v23_bundle_delivered(self, fhir_pipeline: PipelineContext) -> None:
        with req_mock.Mocker() as m:
            m.post(FHIR_URL, status_code=201)
            result = ReceiverApplication(fhir_pipeline).receive(
                build_message(version="2.3", message_type="ORU^R01")
            )
            bundle = m.last_request.json()
            content_type = m.last_request.headers["Content-Type"]

        assert result.ok
        assert content_type == "application/fhir+json"
        assert bundle["resourceType"] == "Bundle"
        assert bundle["entry"][1]["resource"]["id"] == "10023"

    def test_ecr_version_rejected_in_fhir_mode(self, fhir_pipeline: PipelineContext) -> None:
        with req_mock.Mocker() as m:
            result = ReceiverApplication(fhir_pipeline).receive(build_message())
            assert not m.called
        assert result.error is ErrorKind.UNSUPPORTED


class TestReliableDelivery:
    """Failed POSTs land in the queue and are replayed byte-for-byte."""

    def test_failed_post_replayed_by_retry_tick(self, ecr_pipeline: PipelineContext) -> None:
        app = ReceiverApplication(ecr_pipeline)
        with req_mock.Mocker() as m:
            m.post(ECR_URL, status_code=500)
            result = app.receive(build_message())
            failed_body = m.last_request.body

        assert result.ok
        assert ecr_pipeline.queue.size() == 1
        assert ecr_pipeline.queue.peek_oldest() == failed_body

        with req_mock.Mocker() as m:
            m.post(ECR_URL, status_code=201)
            remaining = ecr_pipeline.retry_driver.tick()
            replayed_body = m.last_request.body

        assert remaining == 0
        assert replayed_body == failed_body

    def test_collector_down_then_up(self, ecr_pipeline: PipelineContext) -> None:
        app = ReceiverApplication(ecr_pipeline)
        with req_mock.Mocker() as m:
            m.post(ECR_URL, [{"status_code": 503}, {"status_code": 503}])
            app.receive(build_message(control_id="A"))
            app.receive(build_message(control_id="B"))
        assert ecr_pipeline.queue.size() == 2

        with req_mock.Mocker() as m:
            m.post(ECR_URL, status_code=201)
            assert ecr_pipeline.retry_driver.tick() == 1
            assert ecr_pipeline.retry_driver.tick() == 0
            assert m.call_count == 2

    def test_queue_survives_restart(self, ecr_config: ReceiverConfig, queue_path: Path) -> None:
        first = PipelineContext.from_config(ecr_config)
        try:
            with req_mock.Mocker() as m:
                m.post(ECR_URL, status_code=500)
                ReceiverApplication(first).receive(build_message())
                failed_body = m.last_request.body
        finally:
            first.close()

        second = PipelineContext.from_config(ecr_config)
        try:
            assert second.queue.size() == 1
            with req_mock.Mocker() as m:
                m.post(ECR_URL, status_code=201)
                assert second.retry_driver.tick() == 0
                assert json.loads(m.last_request.body) == json.loads(failed_body)
        finally:
            second.close()
        assert queue_path.exists()
