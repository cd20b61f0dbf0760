from .assembler import DocumentAssembler
from .coding import CodedElementResolver, Resolution, merge_most_complete
from .identity import SelectedIdentity, select_patient_identity
from .mappers import EcrMessageMapper
from .models import CaseReport
from .v231 import V231EcrMapper
from .v251 import V251EcrMapper

__all__ = [
    "CaseReport",
    "CodedElementResolver",
    "DocumentAssembler",
    "EcrMessageMapper",
    "Resolution",
    "SelectedIdentity",
    "V231EcrMapper",
    "V251EcrMapper",
    "merge_most_complete",
    "select_patient_identity",
]
