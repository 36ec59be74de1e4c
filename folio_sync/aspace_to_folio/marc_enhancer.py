"""
Changes applied to ArchivesSpace MARC exports before they are sent to FOLIO.

Each rule takes the record being built, the MARC record currently stored in
FOLIO (or None) and the FOLIO HRID (or None), and modifies the record in
place. :func:`enhance` runs them in the order of :data:`ENHANCEMENTS` on a
copy, so the record it is given is never modified.
"""

import copy
import re
from logging import getLogger

from pymarc import Field, Subfield

from folio_sync.exceptions import MarcEnhancementError

logger = getLogger(__name__)

ORGANIZATION_CODE = "NNC"
FINDING_AID_LABEL = "Finding aid"
NO_EXPORT_CODE = "965noexportAUTH"

TRAILING_PUNCTUATION_RE = re.compile(r"[,.]$")
TRAILING_PERIOD_RE = re.compile(r"[.]$")


def replace_subfields(field, transform):
    """
    Rebuild a field's subfields, dropping those for which ``transform``
    returns None.
    """
    subfields = []
    for subfield in field.subfields:
        replacement = transform(subfield)
        if replacement is not None:
            subfields.append(replacement)
    field.subfields = subfields


def add_controlfield_001(record, folio_marc, hrid):
    if hrid and not record.get_fields("001"):
        record.add_ordered_field(Field(tag="001", data=hrid))


def add_controlfield_003(record, folio_marc, hrid):
    if not record.get_fields("003"):
        record.add_ordered_field(Field(tag="003", data=ORGANIZATION_CODE))


def clean_personal_name(record, folio_marc, hrid):
    """Drop relator terms and the trailing punctuation of dates in 100."""

    def transform(subfield):
        if subfield.code == "e":
            return None
        if subfield.code == "d":
            return Subfield(
                code="d", value=TRAILING_PUNCTUATION_RE.sub("", subfield.value)
            )
        return subfield

    for field in record.get_fields("100"):
        replace_subfields(field, transform)


def label_finding_aid_link(record, folio_marc, hrid):
    def transform(subfield):
        if subfield.code == "z":
            return None
        if subfield.code == "3":
            return Subfield(code="3", value=FINDING_AID_LABEL)
        return subfield

    for field in record.get_fields("856"):
        replace_subfields(field, transform)
        if not field.get_subfields("3"):
            field.add_subfield("3", FINDING_AID_LABEL)


def add_no_export_field(record, folio_marc, hrid):
    for field in record.get_fields("965"):
        if NO_EXPORT_CODE in field.get_subfields("a"):
            return
    record.add_ordered_field(
        Field(
            tag="965",
            indicators=[" ", " "],
            subfields=[Subfield(code="a", value=NO_EXPORT_CODE)],
        )
    )


def clean_corporate_names(record, folio_marc, hrid):
    """
    Strip a trailing period from the subordinate unit ($b) of 110 and 610
    fields, or from the name itself ($a) when there is no subordinate unit.
    """
    for field in record.get_fields("110", "610"):
        if not field.get_subfields("a"):
            continue
        code = "b" if field.get_subfields("b") else "a"

        def transform(subfield, code=code):
            if subfield.code != code:
                return subfield
            return Subfield(code=code, value=TRAILING_PERIOD_RE.sub("", subfield.value))

        replace_subfields(field, transform)


def merge_system_control_numbers(record, folio_marc, hrid):
    if folio_marc is None:
        return

    existing = set()
    for field in record.get_fields("035"):
        existing.update(field.get_subfields("a"))

    for field in folio_marc.get_fields("035"):
        values = field.get_subfields("a")
        if values and not existing.intersection(values):
            record.add_ordered_field(copy.deepcopy(field))
            existing.update(values)


ENHANCEMENTS = [
    add_controlfield_001,
    add_controlfield_003,
    clean_personal_name,
    label_finding_aid_link,
    add_no_export_field,
    clean_corporate_names,
    merge_system_control_numbers,
]


def enhance(marc_record, folio_marc=None, hrid=None, enhancements=None):
    """
    Return a copy of ``marc_record`` with every enhancement applied.

    Raises:
        MarcEnhancementError: If one of the rules fails.
    """
    record = copy.deepcopy(marc_record)
    for enhancement in enhancements or ENHANCEMENTS:
        try:
            enhancement(record, folio_marc, hrid)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise MarcEnhancementError(
                f"{enhancement.__name__} failed: {exc}"
            ) from exc
    logger.debug("Enhanced MARC record %s", hrid or "(no HRID)")
    return record
