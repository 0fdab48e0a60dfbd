"""Authentication schemas."""

from typing import Literal

from pydantic import BaseModel, Field

Role = Literal["SUPER_OWNER", "OWNER", "ADMIN", "AGENT"]


class AuthPrincipal(BaseModel):
    """Normalized authenticated principal used by business services."""

    user_id: str = Field(min_length=1)
    organization_id: str = Field(min_length=1)
    role: Role = "AGENT"

    @property
    def is_super_owner(self) -> bool:
        return self.role == "SUPER_OWNER"

    def organization_scope(self) -> str | None:
        """Tenant filter for reads; ``None`` means every tenant."""
        return None if self.is_super_owner else self.organization_id
