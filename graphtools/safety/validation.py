"""
Input validation for values that end up inside Graph requests.

Identifiers spliced into an OData $filter must be canonical GUIDs: a crafted
value such as "<guid>' or '1'='1" would otherwise rewrite the filter.
"""

from __future__ import annotations

import logging
import re
import uuid
from typing import Iterable

logger = logging.getLogger("graphtools.safety.validation")

GUID_PATTERN = re.compile(r"^[0-9a-fA-F]{8}-([0-9a-fA-F]{4}-){3}[0-9a-fA-F]{12}$")

# local@domain.tld. The local part may carry an apostrophe (sean.o'brien); UPNs
# only go into URL paths, never into an OData filter.
UPN_PATTERN = re.compile(r'^[^@\s"]+@[^@\s\'".]+(\.[^@\s\'".]+)+$')


class InvalidFormatError(ValueError):
    """Raised when a value fails validation. Carries the category and the offending value."""

    category = "InvalidData"

    def __init__(self, kind: str, value: object):
        self.kind = kind
        self.value = value
        super().__init__(f"[{self.category}] Invalid {kind} format: {value!r}")


def is_guid(candidate: object) -> bool:
    """Strict regex AND canonical parse; either alone is not enough."""
    if not isinstance(candidate, str) or not GUID_PATTERN.fullmatch(candidate):
        return False
    try:
        uuid.UUID(candidate)
    except ValueError:
        return False
    return True


def validate_guid(candidate: object, quiet: bool = False) -> bool:
    """
    Validate a canonical 8-4-4-4-12 GUID.
    Returns True/False in quiet mode; otherwise raises InvalidFormatError on failure.
    """
    if is_guid(candidate):
        return True
    if quiet:
        logger.debug(f"Rejected GUID candidate: {candidate!r}")
        return False
    raise InvalidFormatError("GUID", candidate)


def validate_guids(candidates: Iterable[object]) -> list[bool]:
    """Quiet validation of a batch; one result per input, never aborts."""
    return [validate_guid(c, quiet=True) for c in candidates]


def odata_eq(field_name: str, guid: str) -> str:
    """Build `<field> eq '<guid>'` after validating the GUID."""
    validate_guid(guid)
    return f"{field_name} eq '{guid}'"


def validate_upn(candidate: object, quiet: bool = False) -> bool:
    """Validate an email-style user principal name."""
    if isinstance(candidate, str) and UPN_PATTERN.fullmatch(candidate):
        return True
    if quiet:
        return False
    raise InvalidFormatError("UserPrincipalName", candidate)
