"""
Document type catalog.

The set of recognized document kinds is fixed configuration. Types differ
only by whether both sides are needed and by the turnaround label shown
for replacement requests.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional

from .exceptions import UploadValidationError


INVALID_DOCUMENT_TYPE = "INVALID_DOCUMENT_TYPE"


@dataclass(frozen=True)
class DocumentTypeDefinition:
    """Static definition of one document kind."""
    id: str
    requires_both_sides: bool
    estimated_turnaround_label: str


def _define(type_id: str, requires_both_sides: bool, turnaround: str) -> DocumentTypeDefinition:
    return DocumentTypeDefinition(type_id, requires_both_sides, turnaround)


DOCUMENT_TYPES: Mapping[str, DocumentTypeDefinition] = MappingProxyType({
    definition.id: definition
    for definition in (
        _define("drivers_license", True, "2-3 weeks"),
        _define("birth_certificate", False, "4-6 weeks"),
        _define("social_security", False, "2-4 weeks"),
        _define("passport", False, "6-8 weeks"),
        _define("medical_records", False, "1-2 weeks"),
        _define("insurance_card", True, "1-2 weeks"),
        _define("disability_determination", False, "4-6 weeks"),
        _define("medicaid_card", True, "2-3 weeks"),
        _define("veterans_id", True, "3-4 weeks"),
        _define("housing_voucher", False, "2-4 weeks"),
        _define("snap_benefits", True, "1-2 weeks"),
        _define("employment_records", False, "1-2 weeks"),
    )
})


def get_document_type(type_id: Optional[str]) -> Optional[DocumentTypeDefinition]:
    """Look up a document type; ``None`` when unknown."""
    if not type_id or not isinstance(type_id, str):
        return None
    return DOCUMENT_TYPES.get(type_id)


def require_document_type(type_id: Optional[str]) -> DocumentTypeDefinition:
    """
    Look up a document type or raise.

    Raises:
        UploadValidationError: ``INVALID_DOCUMENT_TYPE`` for unknown ids
    """
    definition = get_document_type(type_id)
    if definition is None:
        raise UploadValidationError(
            "Invalid document type",
            field="documentTypeId",
            value=type_id,
            code=INVALID_DOCUMENT_TYPE,
        )
    return definition
