"""
Pydantic models for the people taking part in the marketplace.

Users and communities are owned by other services.  This module only
describes how they appear inside marketplace payloads, plus the
``Actor`` passed explicitly into every mutating service call.
"""

from enum import Enum

from pydantic import BaseModel


class UserRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    MODERATOR = "moderator"
    SERVICE_PROVIDER = "service_provider"
    USER = "user"


# Roles allowed to edit or delete any request in their deployment.
ADMIN_ROLES = frozenset({UserRole.SUPER_ADMIN, UserRole.ADMIN})


class Actor(BaseModel):
    """Authenticated caller as supplied by the identity layer."""

    id: int
    role: UserRole = UserRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


class UserSummary(BaseModel):
    id: int
    name: str
    email: str
    role: UserRole

    model_config = {
        "from_attributes": True,
    }


class CommunitySummary(BaseModel):
    id: int
    name: str
    slug: str

    model_config = {
        "from_attributes": True,
    }
