"""Patient identity selection over PID-3 / PID-4 and PID-5.

An identifier issued by the ``EMR`` assigning authority is preferred wherever
it appears; otherwise the last identifier listed is used. Names are scanned
independently and the last non-empty repetition wins.
"""

from __future__ import annotations

from typing import Iterable, NamedTuple

from ..hl7.accessors import ExtendedId, PersonName

EMR_AUTHORITY = "EMR"


class SelectedIdentity(NamedTuple):
    identifier: str
    assigning_authority: str
    family: str
    given: str
    middle: str

    @property
    def has_name(self) -> bool:
        return bool(self.family or self.given)


def select_patient_identity(
    identifiers: Iterable[ExtendedId],
    names: Iterable[PersonName],
) -> SelectedIdentity | None:
    """Choose the patient identifier and name for one patient-result group.

    Args:
        identifiers: CX repetitions, PID-3 followed by PID-4.
        names: XPN repetitions from PID-5.

    Returns:
        The selected identity, or None when the group has neither an
        identifier nor a name.
    """
    identifier = ""
    authority = ""
    for cx in identifiers:
        if not cx.id_number:
            continue
        identifier = cx.id_number
        authority = cx.assigning_authority
        if authority.upper() == EMR_AUTHORITY:
            break

    family = given = middle = ""
    for name in names:
        if not (name.family or name.given):
            continue
        family, given, middle = name.family, name.given, name.middle

    if not identifier and not (family or given):
        return None
    return SelectedIdentity(identifier, authority, family, given, middle)
