"""Coded element resolution for CE / CWE fields.

A coded field carries two complete encodings of the same concept. The
resolver picks one of them wholesale; it never mixes a code from one
encoding with a display or system from the other.
"""

from __future__ import annotations

from typing import Iterable, NamedTuple

from ..hl7.accessors import CodedField
from .models import CodedElement

PREFERRED_VOCABULARY = "LN"


class Resolution(NamedTuple):
    """Result of resolving one coded field."""

    system: str
    code: str
    display: str
    used_alternate: bool

    @property
    def succeeded(self) -> bool:
        return bool(self.system or self.code or self.display)

    def to_element(self) -> CodedElement:
        return CodedElement(system=self.system, code=self.code, display=self.display)


class CodedElementResolver:
    """Choose between the primary and alternate encodings of a coded field.

    With no preferred vocabulary the alternate encoding is used only when the
    primary one is entirely empty. With a preferred vocabulary (``"LN"`` for
    the case-report dialects) the alternate encoding also wins when it is in
    that vocabulary and the primary encoding is not.
    """

    def __init__(self, preferred_system: str | None = None) -> None:
        self.preferred_system = preferred_system

    def resolve(self, field: CodedField) -> Resolution:
        primary = (field.system, field.identifier, field.text)
        alternate = (field.alternate_system, field.alternate_identifier, field.alternate_text)

        if not any(primary):
            return Resolution(*alternate, used_alternate=True)
        if (
            self.preferred_system
            and field.system != self.preferred_system
            and field.alternate_system == self.preferred_system
        ):
            return Resolution(*alternate, used_alternate=True)
        return Resolution(*primary, used_alternate=False)


def merge_most_complete(fields: Iterable[CodedField]) -> CodedElement:
    """Merge repeating race / ethnicity codes into the most complete triple.

    The first repetition's primary encoding seeds the candidate. Each
    repetition contributes its primary encoding, or its alternate one when the
    primary is empty. A complete triple is taken at once; a triple with system
    and code replaces the candidate; a triple with only a display replaces a
    candidate that lacks a code or system.
    """
    candidate: tuple[str, str, str] | None = None
    for field in fields:
        primary = (field.system, field.identifier, field.text)
        if candidate is None:
            candidate = primary
        triple = primary
        if not any(triple):
            triple = (field.alternate_system, field.alternate_identifier, field.alternate_text)
            if not any(triple):
                continue
        system, code, display = triple
        if system and code and display:
            candidate = triple
            break
        if system and code:
            candidate = triple
        elif display and not (candidate[0] and candidate[1]):
            candidate = triple

    if candidate is None:
        return CodedElement()
    system, code, display = candidate
    return CodedElement(system=system, code=code, display=display)
