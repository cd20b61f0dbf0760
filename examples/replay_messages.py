"""Example: replay ORU^R01 lab messages through the receiver pipeline.

Builds a v2.5.1 ELR message, processes it in ECR mode against a mocked
collector that fails the first POST, then drains the delivery queue.

Usage:
    python examples/replay_messages.py [message.hl7 ...]
"""

from __future__ import annotations

import json
import sys
import tempfile
from pathlib import Path
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from elr_integration.config import ReceiverConfig, configure_logging
from elr_integration.hl7.oru_builder import ORUBuilder
from elr_integration.receiver import PipelineContext, ReceiverApplication


def sample_message() -> str:
    return ORUBuilder.build_r01(
        [[
            ORUBuilder.pid(
                identifiers="10023^^^EMR&2.16.840.1.113883.3.72&ISO^MR",
                name="Doe^Jane^Q",
                birth_date="19800214",
                sex="F",
                race="2106-3^White^CDCREC",
                address="1 Main St^^Springfield^IL^62704",
            ),
            ORUBuilder.orc(
                ordering_provider="1234^Smith^John^^^Dr",
                facility_name="Springfield Clinic^^4455",
                facility_phone="^WPN^PH^^1^217^5550100",
            ),
            ORUBuilder.obr(
                service="94500-6^SARS-CoV-2 RNA Resp Ql NAA+probe^LN",
                requested_at="20240715093000",
                reasons="U07.1^COVID-19^I10",
            ),
            ORUBuilder.obx(
                code="94500-6^SARS-CoV-2 RNA Resp Ql NAA+probe^LN",
                value="260373001^Detected^SCT",
                value_type="CWE",
                observed_at="20240715113000",
            ),
        ]],
        control_id="DEMO0001",
    )


def main() -> None:
    configure_logging("INFO")
    print("=== ELR Replay Demo ===\n")

    raw_messages = [Path(p).read_text() for p in sys.argv[1:]] or [sample_message()]

    failing = MagicMock(status_code=500)
    accepted = MagicMock(status_code=201)
    session = MagicMock()
    session.post.side_effect = [failing] + [accepted] * 50

    with tempfile.TemporaryDirectory() as tmp:
        config = ReceiverConfig(parser_mode="ECR", queue_file=str(Path(tmp) / "queueELR"))
        context = PipelineContext.from_config(config, session=session)
        app = ReceiverApplication(context)

        for raw in raw_messages:
            result = app.receive(raw)
            print(f"Result: {result.error.value}, documents={result.documents}")

        print(f"Queued after first pass: {context.queue.size()}")
        while context.forwarder.drain():
            pass
        print(f"Queued after drain: {context.queue.size()}")

        body = session.post.call_args.kwargs["data"]
        print("\nLast delivered document:")
        print(json.dumps(json.loads(body), indent=2))
        context.close()


if __name__ == "__main__":
    main()
