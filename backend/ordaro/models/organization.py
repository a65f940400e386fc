"""Tenant models: Organization, OrganizationSettings and Branch."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ordaro.db.base import Base, TimestampMixin


class Organization(Base, TimestampMixin):
    """A tenant. Every ingredient, recipe and menu item belongs to exactly one."""

    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(primary_key=True)
    external_id: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False, index=True
    )  # Tenant id issued by the identity provider (org_id claim)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    settings: Mapped[Optional["OrganizationSettings"]] = relationship(
        "OrganizationSettings", back_populates="organization", uselist=False,
        cascade="all, delete-orphan",
    )
    branches: Mapped[list["Branch"]] = relationship("Branch", back_populates="organization")


class OrganizationSettings(Base, TimestampMixin):
    """Per-tenant business settings read by cost propagation."""

    __tablename__ = "organization_settings"

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    target_margin_threshold: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 6), nullable=True
    )  # e.g. 0.65 = warn when a menu item's margin drops below 65%
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)

    organization: Mapped["Organization"] = relationship("Organization", back_populates="settings")


class Branch(Base, TimestampMixin):
    """A physical location of a tenant; batches and entries may be scoped to one."""

    __tablename__ = "branches"

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    organization: Mapped["Organization"] = relationship("Organization", back_populates="branches")
