"""Unit tests for receiver configuration."""

from __future__ import annotations

import logging

import pytest
from pydantic import ValidationError

from elr_integration.config import ReceiverConfig, configure_logging, normalize_url


class TestDefaults:
    def test_defaults(self) -> None:
        config = ReceiverConfig()
        assert config.parser_mode == "FHIR"
        assert config.ecr_url == "http://localhost:8888/ECR"
        assert config.fhir_url == "http://localhost:8080/fhir"
        assert config.queue_file == "queueELR"
        assert config.request_timeout is None
        assert config.remove_before_send is True

    def test_destination_follows_mode(self) -> None:
        assert ReceiverConfig(parser_mode="ECR").destination_url == "http://localhost:8888/ECR"
        assert ReceiverConfig(parser_mode="FHIR").destination_url == "http://localhost:8080/fhir"

    def test_content_type_follows_mode(self) -> None:
        assert ReceiverConfig(parser_mode="ECR").content_type == "application/json"
        assert ReceiverConfig(parser_mode="FHIR").content_type == "application/fhir+json"


class TestValidation:
    def test_mode_uppercased(self) -> None:
        assert ReceiverConfig(parser_mode=" ecr ").parser_mode == "ECR"

    def test_unknown_mode_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ReceiverConfig(parser_mode="CDA")

    def test_non_positive_timeout_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ReceiverConfig(request_timeout=0)

    def test_unknown_patient_id_style_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ReceiverConfig(patient_id_style="first")


class TestFromEnv:
    def test_environment_overrides_defaults(self) -> None:
        config = ReceiverConfig.from_env({
            "ECR_URL": "collector.internal:9000/ECR/",
            "PARSER_MODE": "ecr",
            "QUEUE_FILE": "/var/lib/elr/queue",
            "REQUEST_TIMEOUT": "2.5",
        })
        assert config.parser_mode == "ECR"
        assert config.ecr_url == "http://collector.internal:9000/ECR"
        assert config.queue_file == "/var/lib/elr/queue"
        assert config.request_timeout == 2.5

    def test_blank_variables_ignored(self) -> None:
        config = ReceiverConfig.from_env({"FHIR_URL": "  ", "PARSER_MODE": ""})
        assert config.fhir_url == "http://localhost:8080/fhir"
        assert config.parser_mode == "FHIR"

    def test_overrides_beat_environment(self) -> None:
        config = ReceiverConfig.from_env({"PARSER_MODE": "ECR"}, parser_mode="FHIR")
        assert config.parser_mode == "FHIR"


@pytest.mark.parametrize("raw,expected", [
    ("localhost:8888/ECR", "http://localhost:8888/ECR"),
    ("https://collector.example.org/fhir/", "https://collector.example.org/fhir"),
    ("http://host//", "http://host"),
])
def test_normalize_url(raw: str, expected: str) -> None:
    assert normalize_url(raw) == expected


def test_configure_logging_accepts_level_name(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))
    configure_logging("debug")
    assert calls[0]["level"] == "DEBUG"
