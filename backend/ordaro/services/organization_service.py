"""Tenant resolution and per-tenant settings lookups."""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ordaro.models.organization import Branch, Organization, OrganizationSettings
from ordaro.services.exceptions import NotFoundError

logger = logging.getLogger(__name__)


def resolve_organization(db: Session, tenant_id: str) -> Organization:
    """Map the tenant id carried by the caller to the internal organization."""
    organization = db.query(Organization).filter(
        Organization.external_id == tenant_id,
        Organization.is_active == True,
    ).first()
    if not organization:
        raise NotFoundError("Organization", tenant_id)
    return organization


def get_target_margin_threshold(db: Session, organization_id: int) -> Optional[Decimal]:
    settings_row = db.query(OrganizationSettings).filter(
        OrganizationSettings.organization_id == organization_id
    ).first()
    if not settings_row:
        return None
    return settings_row.target_margin_threshold


def get_branch(db: Session, organization_id: int, branch_id: int) -> Branch:
    """Fetch a branch, treating another tenant's branch as missing."""
    branch = db.query(Branch).filter(
        Branch.id == branch_id,
        Branch.organization_id == organization_id,
    ).first()
    if not branch:
        raise NotFoundError("Branch", branch_id)
    return branch


class TenantScopedService:
    """Base for services whose every query is scoped to one organization."""

    def __init__(self, db: Session, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id
        self.organization = resolve_organization(db, tenant_id)

    @property
    def organization_id(self) -> int:
        return self.organization.id
