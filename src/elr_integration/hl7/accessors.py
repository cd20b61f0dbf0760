"""Typed accessors and group walking over a python-hl7 parse tree.

python-hl7 splits a message into nested containers (segment, field,
repetition, component, sub-component) but stops splitting as soon as a piece
holds no further separators, so any level of the tree may already be a plain
``str``. The helpers below read through either shape and expose the HL7
composite data types the lab mappers work with.

Positions are 1-based throughout, exactly as HL7 numbers them: ``PID-3.4.1``
is ``segment.first(3).sub(4, 1)``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, NamedTuple

import hl7

from ..errors import MalformedMessageError

logger = logging.getLogger(__name__)

_PATIENT_ATTACHED = {"PD1", "NK1", "PV1", "PV2"}


# ------------------------------------------------------------------
# Composite data types
# ------------------------------------------------------------------

class CodedField(NamedTuple):
    """CE / CWE: primary triple (components 1-3) and alternate triple (4-6)."""

    identifier: str = ""
    text: str = ""
    system: str = ""
    alternate_identifier: str = ""
    alternate_text: str = ""
    alternate_system: str = ""


class ExtendedId(NamedTuple):
    """CX: patient identifier with its assigning authority namespace."""

    id_number: str = ""
    assigning_authority: str = ""
    type_code: str = ""


class PersonName(NamedTuple):
    """XPN: a patient name. ``family_prefix`` is the 2.3.1 last-name prefix."""

    family: str = ""
    given: str = ""
    middle: str = ""
    suffix: str = ""
    prefix: str = ""
    family_prefix: str = ""


class Address(NamedTuple):
    """XAD."""

    street: str = ""
    other: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""


class ProviderName(NamedTuple):
    """XCN: identifier plus the name parts of a clinician."""

    id_number: str = ""
    family: str = ""
    given: str = ""
    middle: str = ""
    suffix: str = ""
    prefix: str = ""


class Organization(NamedTuple):
    """XON."""

    name: str = ""
    id_number: str = ""


class Telecom(NamedTuple):
    """XTN: free-text number plus the structured parts."""

    any_text: str = ""
    country_code: str = ""
    area_code: str = ""
    local_number: str = ""


class HierarchicDesignator(NamedTuple):
    """HD."""

    namespace: str = ""
    universal_id: str = ""
    universal_id_type: str = ""


# ------------------------------------------------------------------
# Tree navigation
# ------------------------------------------------------------------

class Composite:
    """One repetition of a field, addressed by component / sub-component."""

    def __init__(self, node: Any) -> None:
        self._node = node

    def component(self, n: int) -> str:
        """Full text of component ``n`` including any sub-components."""
        return _text(_child(self._node, n - 1))

    def sub(self, n: int, m: int) -> str:
        return _text(_child(_child(self._node, n - 1), m - 1))

    def __str__(self) -> str:
        return _text(self._node)

    def __bool__(self) -> bool:
        return bool(_text(self._node))

    # Typed readers -------------------------------------------------

    def as_coded(self) -> CodedField:
        return CodedField(*(self.component(i) for i in range(1, 7)))

    def as_extended_id(self) -> ExtendedId:
        return ExtendedId(
            id_number=self.component(1),
            assigning_authority=self.sub(4, 1),
            type_code=self.component(5),
        )

    def as_person_name(self) -> PersonName:
        return PersonName(
            family=self.sub(1, 1),
            given=self.component(2),
            middle=self.component(3),
            suffix=self.component(4),
            prefix=self.component(5),
            family_prefix=self.sub(1, 2),
        )

    def as_address(self) -> Address:
        return Address(
            street=self.sub(1, 1),
            other=self.component(2),
            city=self.component(3),
            state=self.component(4),
            zip_code=self.component(5),
            country=self.component(6),
        )

    def as_provider_name(self) -> ProviderName:
        return ProviderName(
            id_number=self.component(1),
            family=self.sub(2, 1),
            given=self.component(3),
            middle=self.component(4),
            suffix=self.component(5),
            prefix=self.component(6),
        )

    def as_organization(self) -> Organization:
        return Organization(name=self.component(1), id_number=self.component(3))

    def as_telecom(self) -> Telecom:
        return Telecom(
            any_text=self.component(1),
            country_code=self.component(5),
            area_code=self.component(6),
            local_number=self.component(7),
        )

    def as_hierarchic_designator(self) -> HierarchicDesignator:
        return HierarchicDesignator(
            namespace=self.component(1),
            universal_id=self.component(2),
            universal_id_type=self.component(3),
        )


class Segment:
    """A parsed segment with 1-based field access."""

    def __init__(self, raw: Any) -> None:
        self._raw = raw

    @property
    def name(self) -> str:
        return _text(_child(self._raw, 0))

    def repetitions(self, n: int) -> list[Composite]:
        """All repetitions of field ``n``; an empty field has none."""
        node = _child(self._raw, n)
        if not _text(node):
            return []
        if isinstance(node, str):
            return [Composite(node)]
        return [Composite(rep) for rep in node]

    def first(self, n: int) -> Composite:
        reps = self.repetitions(n)
        return reps[0] if reps else Composite("")

    def value(self, n: int, component: int = 1) -> str:
        return self.first(n).component(component)

    def __str__(self) -> str:
        return _text(self._raw)

    def __repr__(self) -> str:
        return f"Segment({self.name})"


# ------------------------------------------------------------------
# Message groups
# ------------------------------------------------------------------

@dataclass
class Observation:
    """OBSERVATION group: one OBX and its notes."""

    obx: Segment
    notes: list[Segment] = field(default_factory=list)


@dataclass
class OrderObservation:
    """ORDER_OBSERVATION group. ``obr`` is None for a structurally broken order."""

    orc: Segment | None = None
    obr: Segment | None = None
    observations: list[Observation] = field(default_factory=list)
    notes: list[Segment] = field(default_factory=list)


@dataclass
class PatientResult:
    """PATIENT_RESULT (v2.5.1) / RESPONSE (v2.3) group."""

    pid: Segment | None = None
    attached: list[Segment] = field(default_factory=list)
    orders: list[OrderObservation] = field(default_factory=list)
    notes: list[Segment] = field(default_factory=list)


class Hl7Message:
    """Read-only view of one parsed HL7 v2 message."""

    def __init__(self, parsed: Any) -> None:
        self._parsed = parsed
        self.segments = [Segment(raw) for raw in parsed]
        self.header = self.segments[0]

    @classmethod
    def parse(cls, text: str | bytes) -> "Hl7Message":
        """Tokenize raw message text.

        Segment terminators may be CR, LF or CRLF; all are normalized to CR
        before handing the text to ``hl7.parse``.

        Raises:
            MalformedMessageError: if the text is not an HL7 v2 message.
        """
        if isinstance(text, bytes):
            try:
                text = text.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise MalformedMessageError(f"message is not UTF-8 text: {exc}") from exc
        normalized = text.replace("\r\n", "\r").replace("\n", "\r").strip()
        if not normalized.startswith("MSH") or len(normalized) < 8:
            raise MalformedMessageError("message does not start with an MSH header")
        try:
            parsed = hl7.parse(normalized)
        except (hl7.ParseException, ValueError, IndexError) as exc:
            raise MalformedMessageError(f"cannot tokenize message: {exc}") from exc
        return cls(parsed)

    # MSH accessors ---------------------------------------------------

    @property
    def version(self) -> str:
        return self.header.value(12)

    @property
    def message_type(self) -> str | None:
        return self.header.value(9, 1) or None

    @property
    def trigger_event(self) -> str | None:
        return self.header.value(9, 2) or None

    @property
    def message_structure(self) -> str | None:
        return self.header.value(9, 3) or None

    @property
    def control_id(self) -> str:
        return self.header.value(10)

    @property
    def sending_application(self) -> HierarchicDesignator:
        return self.header.first(3).as_hierarchic_designator()

    @property
    def sending_facility(self) -> HierarchicDesignator:
        return self.header.first(4).as_hierarchic_designator()

    @property
    def receiving_application(self) -> HierarchicDesignator:
        return self.header.first(5).as_hierarchic_designator()

    @property
    def receiving_facility(self) -> HierarchicDesignator:
        return self.header.first(6).as_hierarchic_designator()

    @property
    def message_datetime(self) -> str:
        return self.header.value(7)

    # Groups ----------------------------------------------------------

    @property
    def patient_results(self) -> list[PatientResult]:
        return _walk_groups(self.segments[1:])

    def __str__(self) -> str:
        return "\r".join(str(seg) for seg in self.segments)


def hl7_datetime_to_iso(value: str) -> str | None:
    """Convert an HL7 TS/DTM string to ISO-8601, or None when absent/invalid."""
    if not value:
        return None
    try:
        parsed = hl7.parse_datetime(value)
    except ValueError:
        logger.warning("Ignoring malformed HL7 timestamp %r", value)
        return None
    return parsed.isoformat() if parsed else None


# ------------------------------------------------------------------
# Private helpers
# ------------------------------------------------------------------

def _child(node: Any, index: int) -> Any:
    if node is None:
        return ""
    if isinstance(node, str):
        return node if index == 0 else ""
    if index < len(node):
        return node[index]
    return ""


def _text(node: Any) -> str:
    if node is None:
        return ""
    return str(node).strip()


def _walk_groups(segments: list[Segment]) -> list[PatientResult]:
    groups: list[PatientResult] = []
    patient: PatientResult | None = None
    order: OrderObservation | None = None
    observation: Observation | None = None

    def current_patient() -> PatientResult:
        nonlocal patient
        if patient is None:
            patient = PatientResult()
            groups.append(patient)
        return patient

    for seg in segments:
        name = seg.name
        if name == "PID":
            patient = PatientResult(pid=seg)
            groups.append(patient)
            order = observation = None
        elif name in _PATIENT_ATTACHED:
            current_patient().attached.append(seg)
        elif name == "ORC":
            order = OrderObservation(orc=seg)
            current_patient().orders.append(order)
            observation = None
        elif name == "OBR":
            if order is None or order.obr is not None or order.observations:
                order = OrderObservation()
                current_patient().orders.append(order)
            order.obr = seg
            observation = None
        elif name == "OBX":
            if order is None:
                order = OrderObservation()
                current_patient().orders.append(order)
            observation = Observation(obx=seg)
            order.observations.append(observation)
        elif name == "NTE":
            if observation is not None:
                observation.notes.append(seg)
            elif order is not None:
                order.notes.append(seg)
            elif patient is not None:
                patient.notes.append(seg)
        else:
            logger.debug("Ignoring %s segment outside the result groups", name)
    return groups
