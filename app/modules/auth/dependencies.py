"""
Dependencias de autenticación para FastAPI.

La autenticación y resolución de tenant son externas a este servicio: aquí solo
se decodifica el JWT emitido por el proveedor de identidad y se arma el
AuthContext (tenant, actor, rol).
"""
from uuid import UUID
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.modules.auth.schemas import AuthContext
from app.modules.auth.utils import verify_token

# Security scheme
security = HTTPBearer()


class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def get_auth_context(
        request: Request,
        credentials: HTTPAuthorizationCredentials = Depends(security)
    ) -> AuthContext:
        """
        Obtener contexto de autenticación completo con tenant.
        Requiere X-Company-ID header o tenant_id en el token.
        """
        payload = verify_token(credentials.credentials)

        user_id = payload.get("sub")
        if user_id is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="No se pudieron validar las credenciales",
                headers={"WWW-Authenticate": "Bearer"},
            )

        tenant_id = payload.get("tenant_id") or getattr(request.state, "tenant_id", None)
        try:
            tenant_uuid = UUID(str(tenant_id)) if tenant_id else None
            user_uuid = UUID(str(user_id))
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Identificador de usuario o empresa inválido"
            )

        return AuthContext(
            user_id=user_uuid,
            tenant_id=tenant_uuid,
            user_role=payload.get("user_role"),
            user_name=payload.get("name")
        )

    @staticmethod
    def require_role(allowed_roles: list[str]):
        """
        Dependencia para requerir roles específicos.
        """
        def role_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)):
            if not auth_context.tenant_id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Se requiere seleccionar una empresa"
                )

            if auth_context.user_role not in allowed_roles:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Se requiere uno de estos roles: {', '.join(allowed_roles)}"
                )

            return auth_context
        return role_checker


# Roles operativos del punto de venta
STAFF_ROLES = ["owner", "admin", "cashier", "seller"]
REPORT_ROLES = ["owner", "admin", "accountant"]
