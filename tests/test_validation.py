"""Tests for graphtools.safety.validation."""

import uuid

import pytest
from hypothesis import assume, given
from hypothesis import strategies as st

from graphtools.safety.validation import (
    GUID_PATTERN,
    InvalidFormatError,
    is_guid,
    odata_eq,
    validate_guid,
    validate_guids,
    validate_upn,
)

CANONICAL = "3f2504e0-4f89-11d3-9a0c-0305e82c3301"


class TestValidateGuid:
    def test_canonical_lower_and_upper(self):
        assert validate_guid(CANONICAL)
        assert validate_guid(CANONICAL.upper())

    @given(value=st.uuids())
    def test_any_canonical_uuid_passes(self, value):
        assert validate_guid(str(value))

    @pytest.mark.parametrize("value", [
        CANONICAL.replace("-", ""),
        "{" + CANONICAL + "}",
        "urn:uuid:" + CANONICAL,
        CANONICAL + "\n",
        " " + CANONICAL,
        CANONICAL[:-1],
        CANONICAL[:-1] + "g",
        "",
    ])
    def test_non_canonical_rejected(self, value):
        assert validate_guid(value, quiet=True) is False
        with pytest.raises(InvalidFormatError):
            validate_guid(value)

    def test_injection_payload_rejected(self):
        payload = f"{CANONICAL}' or '1'='1"
        assert validate_guid(payload, quiet=True) is False
        with pytest.raises(InvalidFormatError) as exc_info:
            validate_guid(payload)
        assert exc_info.value.category == "InvalidData"
        assert exc_info.value.value == payload

    @given(value=st.text(max_size=60))
    def test_arbitrary_text_never_passes_unless_canonical(self, value):
        assume(not GUID_PATTERN.fullmatch(value))
        assert validate_guid(value, quiet=True) is False

    @given(value=st.uuids())
    def test_hex_form_rejected(self, value):
        assert validate_guid(value.hex, quiet=True) is False

    @pytest.mark.parametrize("value", [None, 42, uuid.UUID(CANONICAL), b"bytes"])
    def test_non_strings_rejected(self, value):
        assert is_guid(value) is False

    def test_batch_is_quiet_and_complete(self):
        assert validate_guids([CANONICAL, "nope", None, CANONICAL.upper()]) == [True, False, False, True]


class TestODataEq:
    def test_builds_filter(self):
        assert odata_eq("principalId", CANONICAL) == f"principalId eq '{CANONICAL}'"

    def test_refuses_injection(self):
        with pytest.raises(InvalidFormatError):
            odata_eq("principalId", f"{CANONICAL}' or '1'='1")


class TestValidateUpn:
    @pytest.mark.parametrize("value", [
        "alice@contoso.com",
        "first.last+tag@sub.contoso.co.uk",
        "ext_user#EXT#@contoso.onmicrosoft.com",
        "sean.o'brien@contoso.com",
    ])
    def test_valid(self, value):
        assert validate_upn(value)

    @pytest.mark.parametrize("value", [
        "alice",
        "alice@",
        "@contoso.com",
        "alice@contoso",
        "alice@@contoso.com",
        "alice smith@contoso.com",
        "alice@contoso.com\n",
        "alice@con'toso.com",
        'alice"@contoso.com',
        "alice@contoso.",
        "",
    ])
    def test_invalid(self, value):
        assert validate_upn(value, quiet=True) is False
        with pytest.raises(InvalidFormatError) as exc_info:
            validate_upn(value)
        assert exc_info.value.kind == "UserPrincipalName"

    def test_non_string(self):
        assert validate_upn(None, quiet=True) is False
