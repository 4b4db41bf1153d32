# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.
"""Unit tests for key normalization, name validation and the permission catalogue."""

import pytest

from atrium.core.errors import ValidationError
from atrium.identity.catalog import (
    SYSTEM_PERMISSIONS,
    section_permission_name,
    section_permissions,
    validate_permission_name,
)
from atrium.identity.normalize import (
    MAX_SECTION_KEY_LENGTH,
    normalize_key,
    normalize_section_name,
    validate_email,
    validate_role_name,
    validate_section_name,
    validate_tenant_identifier,
)


class TestNormalize:
    def test_normalize_key(self):
        assert normalize_key("  Bob@Example.com ") == "BOB@EXAMPLE.COM"

    def test_section_name(self):
        assert normalize_section_name("órdenes de compra") == "OrdenesDeCompra"
        assert normalize_section_name("sales-report 2024") == "SalesReport2024"


class TestValidation:
    @pytest.mark.parametrize("identifier", ["acme", "acme-eu", "a1"])
    def test_valid_identifiers(self, identifier):
        assert validate_tenant_identifier(identifier) == identifier

    @pytest.mark.parametrize("identifier", ["", "a", "1acme", "acme-", "ac--me", "Acme", "acme_eu"])
    def test_invalid_identifiers(self, identifier):
        with pytest.raises(ValidationError):
            validate_tenant_identifier(identifier)

    def test_role_name(self):
        assert validate_role_name(" Editor ") == "Editor"
        with pytest.raises(ValidationError):
            validate_role_name("x")
        with pytest.raises(ValidationError):
            validate_role_name("bad/name")

    def test_section_name_needs_alphanumerics(self):
        with pytest.raises(ValidationError):
            validate_section_name("-- --")

    def test_section_key_fits_permission_names(self):
        assert validate_section_name("a" * MAX_SECTION_KEY_LENGTH) == "a" * 78
        with pytest.raises(ValidationError) as exc:
            validate_section_name("a" * (MAX_SECTION_KEY_LENGTH + 1))
        assert exc.value.field == "name"
        longest = section_permission_name("Create", normalize_section_name("a" * 78))
        assert len(longest) == 100

    def test_email(self):
        assert validate_email(" a@b.io ") == "a@b.io"
        with pytest.raises(ValidationError) as exc:
            validate_email("nope")
        assert exc.value.field == "email"


class TestCatalog:
    def test_system_permissions_follow_format(self):
        for name, _ in SYSTEM_PERMISSIONS:
            assert validate_permission_name(name) == name

    def test_bad_permission_name(self):
        with pytest.raises(ValidationError):
            validate_permission_name("viewUsers")

    def test_section_permissions(self):
        names = [n for n, _ in section_permissions("Invoices", "Invoices")]
        assert names == [
            "CanCreateDataInSectionInvoices",
            "CanReadDataInSectionInvoices",
            "CanUpdateDataInSectionInvoices",
            "CanDeleteDataInSectionInvoices",
        ]

    def test_unknown_operation(self):
        with pytest.raises(ValidationError):
            section_permission_name("Archive", "Invoices")
