# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
Key normalization and name validation for tenant-scoped uniqueness.

Uniqueness is always checked on the normalized form, within one tenant.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Optional

from atrium.core.errors import ValidationError

_NAME_CHARS = re.compile(r"^[\w\-\s\.]+$")
_SECTION_SEPARATORS = re.compile(r"[\s\-\._]+")
_IDENTIFIER = re.compile(r"^[a-z][a-z0-9\-]*[a-z0-9]$")
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Section permission names ("CanCreateDataInSection" + key) are capped at 100.
MAX_SECTION_KEY_LENGTH = 100 - len("CanCreateDataInSection")


def normalize_key(value: str) -> str:
    """Case-insensitive lookup key for usernames, emails and role names."""
    return unicodedata.normalize("NFKC", value or "").strip().upper()


def strip_diacritics(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_section_name(name: str) -> str:
    """
    PascalCase, diacritic-free key for a section name.

    "órdenes de compra" -> "OrdenesDeCompra"
    """
    words = _SECTION_SEPARATORS.split(strip_diacritics(name or "").strip())
    pascal = "".join(word.capitalize() for word in words if word)
    return "".join(ch for ch in pascal if ch.isalnum())


# ── Validation ──────────────────────────────────────────────

def _check_length(value: str, field: str, minimum: int, maximum: int) -> None:
    if len(value) < minimum or len(value) > maximum:
        raise ValidationError(
            f"{field} must be between {minimum} and {maximum} characters", field=field,
        )


def validate_tenant_identifier(identifier: str) -> str:
    identifier = (identifier or "").strip()
    if not identifier:
        raise ValidationError("Tenant identifier must not be empty", field="identifier")
    _check_length(identifier, "identifier", 2, 50)
    if not _IDENTIFIER.match(identifier) or "--" in identifier:
        raise ValidationError(
            "Tenant identifier must start with a lowercase letter, end with a letter "
            "or digit and contain only lowercase letters, digits and single hyphens",
            field="identifier",
        )
    return identifier


def validate_tenant_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Tenant name must not be empty", field="name")
    _check_length(name, "name", 2, 100)
    return name


def validate_role_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Role name must not be empty", field="name")
    _check_length(name, "name", 2, 50)
    if not _NAME_CHARS.match(name):
        raise ValidationError("Role name contains invalid characters", field="name")
    return name


def validate_section_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Section name must not be empty", field="name")
    _check_length(name, "name", 2, 100)
    if not _NAME_CHARS.match(name):
        raise ValidationError("Section name contains invalid characters", field="name")
    key = normalize_section_name(name)
    if not key:
        raise ValidationError("Section name must contain letters or digits", field="name")
    if len(key) > MAX_SECTION_KEY_LENGTH:
        raise ValidationError(
            f"Section name must normalize to at most {MAX_SECTION_KEY_LENGTH} letters or digits",
            field="name",
        )
    return name


def validate_description(description: Optional[str], maximum: int = 500) -> Optional[str]:
    if description is not None and len(description) > maximum:
        raise ValidationError(
            f"description must not exceed {maximum} characters", field="description",
        )
    return description


def validate_email(email: str) -> str:
    email = (email or "").strip()
    if not _EMAIL.match(email):
        raise ValidationError(f"Invalid email address: {email!r}", field="email")
    return email
