# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
Permission Catalogue — Built-in permission names and naming rules.

Permissions are global. The system set below is seeded at startup and
can be neither renamed nor deleted. Each section definition adds four
more (one per data operation).
"""

from __future__ import annotations

import re
from typing import List, Tuple

from atrium.core.errors import ValidationError

ADMIN_ROLE_NAME = "Administrator"

CREATE_USER = "CanCreateUser"
EDIT_USER = "CanEditUser"
DELETE_USER = "CanDeleteUser"
VIEW_USERS = "CanViewUsers"
CREATE_ROLE = "CanCreateRole"
EDIT_ROLE = "CanEditRole"
DELETE_ROLE = "CanDeleteRole"
VIEW_ROLES = "CanViewRoles"
ASSIGN_ROLES = "CanAssignRoles"
ASSIGN_PERMISSIONS = "CanAssignPermissions"
DEFINE_SECTIONS = "CanDefineSections"
VIEW_ALL_SECTIONS = "CanViewAllSections"

SYSTEM_PERMISSIONS: Tuple[Tuple[str, str], ...] = (
    (CREATE_USER, "Create users in the tenant"),
    (EDIT_USER, "Edit users in the tenant"),
    (DELETE_USER, "Delete users in the tenant"),
    (VIEW_USERS, "List and view users"),
    (CREATE_ROLE, "Create roles"),
    (EDIT_ROLE, "Edit roles"),
    (DELETE_ROLE, "Delete roles"),
    (VIEW_ROLES, "List and view roles"),
    (ASSIGN_ROLES, "Assign roles to users"),
    (ASSIGN_PERMISSIONS, "Assign permissions to roles"),
    (DEFINE_SECTIONS, "Create and edit section definitions"),
    (VIEW_ALL_SECTIONS, "View every section of the tenant"),
)

SECTION_OPERATIONS = ("Create", "Read", "Update", "Delete")

_PERMISSION_NAME = re.compile(r"^Can[A-Z][A-Za-z0-9]*$")


def validate_permission_name(name: str) -> str:
    if not name or not name.strip():
        raise ValidationError("Permission name must not be empty", field="name")
    if len(name) < 3 or len(name) > 100:
        raise ValidationError("Permission name must be between 3 and 100 characters", field="name")
    if not _PERMISSION_NAME.match(name):
        raise ValidationError("Permission name must follow the 'CanXxxYyy' format", field="name")
    return name


def section_permission_name(operation: str, normalized_section: str) -> str:
    if operation not in SECTION_OPERATIONS:
        raise ValidationError(f"Unknown section operation: {operation}", field="operation")
    return f"Can{operation}DataInSection{normalized_section}"


def section_permissions(normalized_section: str, display_name: str) -> List[Tuple[str, str]]:
    """(name, description) pairs for the four data permissions of a section."""
    verbs = {"Create": "create", "Read": "view", "Update": "modify", "Delete": "delete"}
    return [
        (
            section_permission_name(op, normalized_section),
            f"Allows users to {verbs[op]} data in section {display_name}",
        )
        for op in SECTION_OPERATIONS
    ]
