from typing import Optional
from uuid import UUID

from pydantic import BaseModel

ADMIN_ROLES = ("owner", "admin")


class AuthContext(BaseModel):
    """Identidad que el colaborador de autenticación entrega a cada operación."""
    user_id: UUID
    tenant_id: Optional[UUID] = None
    user_role: Optional[str] = None
    user_name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.user_role in ADMIN_ROLES

    @property
    def actor_name(self) -> str:
        return self.user_name or str(self.user_id)
