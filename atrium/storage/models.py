# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
ORM Models — Table definitions for the Atrium tenancy core.

Tables:
  - tenants: Global registry of organizations
  - users: Tenant-scoped authentication principals
  - roles: Tenant-scoped roles
  - user_roles: User <-> Role assignments (id pairs)
  - permissions: Global permission catalogue
  - role_permissions: Role <-> Permission assignments (tenant-stamped)
  - section_definitions: Tenant-scoped custom data sections

Every tenant-scoped table carries a non-null, indexed tenant_id and
composite (tenant_id, normalized_key) uniqueness.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Text, Boolean, DateTime, ForeignKey,
    UniqueConstraint, Uuid,
)
from sqlalchemy.orm import declared_attr

from atrium.storage.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


def _genuuid():
    return uuid.uuid4()


class TenantScoped:
    """Mixin for rows owned by exactly one tenant."""

    @declared_attr
    def tenant_id(cls):
        return Column(
            Uuid,
            ForeignKey("tenants.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )


# ── Tenants ─────────────────────────────────────────────────

class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(Uuid, primary_key=True, default=_genuuid)
    name = Column(String(100), nullable=False)
    identifier = Column(String(50), nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    modified_at = Column(DateTime(timezone=True), nullable=True, onupdate=_utcnow)

    def __repr__(self):
        return f"<Tenant {self.identifier} ({self.id})>"


# ── Users ───────────────────────────────────────────────────

class User(TenantScoped, Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=_genuuid)
    username = Column(String(256), nullable=False)
    normalized_username = Column(String(256), nullable=False)
    email = Column(String(256), nullable=False)
    normalized_email = Column(String(256), nullable=False)
    full_name = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    password_hash = Column(Text, nullable=True)  # opaque to this core
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    modified_at = Column(DateTime(timezone=True), nullable=True, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("tenant_id", "normalized_username", name="uq_users_tenant_username"),
        UniqueConstraint("tenant_id", "normalized_email", name="uq_users_tenant_email"),
    )

    def __repr__(self):
        return f"<User {self.username} tenant={self.tenant_id}>"


# ── Roles ───────────────────────────────────────────────────

class Role(TenantScoped, Base):
    __tablename__ = "roles"

    id = Column(Uuid, primary_key=True, default=_genuuid)
    name = Column(String(50), nullable=False)
    normalized_name = Column(String(50), nullable=False)
    description = Column(String(500), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    modified_at = Column(DateTime(timezone=True), nullable=True, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("tenant_id", "normalized_name", name="uq_roles_tenant_name"),
    )

    def __repr__(self):
        return f"<Role {self.name} tenant={self.tenant_id}>"


class UserRole(Base):
    __tablename__ = "user_roles"

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    role_id = Column(Uuid, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self):
        return f"<UserRole {self.user_id}:{self.role_id}>"


# ── Permissions ─────────────────────────────────────────────

class Permission(Base):
    __tablename__ = "permissions"

    id = Column(Uuid, primary_key=True, default=_genuuid)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(String(500), nullable=False, default="")
    is_system = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    modified_at = Column(DateTime(timezone=True), nullable=True, onupdate=_utcnow)

    def __repr__(self):
        return f"<Permission {self.name}>"


class RolePermission(TenantScoped, Base):
    __tablename__ = "role_permissions"

    role_id = Column(Uuid, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True)
    permission_id = Column(
        Uuid, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True, index=True,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self):
        return f"<RolePermission {self.role_id}:{self.permission_id}>"


# ── Section Definitions ─────────────────────────────────────

class SectionDefinition(TenantScoped, Base):
    __tablename__ = "section_definitions"

    id = Column(Uuid, primary_key=True, default=_genuuid)
    name = Column(String(100), nullable=False)
    normalized_name = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    modified_at = Column(DateTime(timezone=True), nullable=True, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("tenant_id", "normalized_name", name="uq_sections_tenant_name"),
    )

    def permission_name(self, operation: str) -> str:
        """e.g. permission_name("Read") -> "CanReadDataInSectionInvoices"."""
        return f"Can{operation}DataInSection{self.normalized_name}"

    def __repr__(self):
        return f"<Section {self.name} tenant={self.tenant_id}>"
