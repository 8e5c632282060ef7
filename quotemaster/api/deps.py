from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from quotemaster.config import settings
from quotemaster.core.errors import ErrorKind, ProcurementError
from quotemaster.core.security import decode_access_token_subject
from quotemaster.database import get_db
from quotemaster.models import RoleName, User


def _token_url() -> str:
    if settings.api_prefix:
        prefix = settings.api_prefix.rstrip("/")
        return f"{prefix}/auth/token"
    return "/auth/token"


oauth2_optional = OAuth2PasswordBearer(tokenUrl=_token_url(), auto_error=False)

_DB_DEP = Depends(get_db)
_TOKEN_OPT_DEP = Depends(oauth2_optional)


def _extract_bearer_from_headers(request: Request) -> Optional[str]:
    raw = request.headers.get("authorization") or request.headers.get("x-auth-token")
    if not raw:
        return None
    s = str(raw).strip()
    if not s:
        return None
    if s.lower().startswith("bearer "):
        return s.split(" ", 1)[1].strip()
    return s


def get_current_user(
    request: Request,
    db: Session = _DB_DEP,
    token: Optional[str] = _TOKEN_OPT_DEP,
) -> User:
    if not token:
        token = _extract_bearer_from_headers(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    subject = decode_access_token_subject(token)
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    user = db.query(User).filter(User.email == subject, User.active.is_(True)).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


def _role_value(user: User) -> str:
    user_role = getattr(getattr(user, "role", None), "name", None)
    if isinstance(user_role, RoleName):
        return user_role.value
    return str(user_role) if user_role is not None else ""


def require_roles(*roles: RoleName) -> Callable:
    _CURRENT_USER_DEP = Depends(get_current_user)
    allowed = {r.value if isinstance(r, RoleName) else str(r) for r in roles}

    def dependency(user: User = _CURRENT_USER_DEP) -> User:
        if not roles:
            return user
        user_role_value = _role_value(user)
        # Admin has access to everything
        if user_role_value == RoleName.admin.value:
            return user
        if user_role_value not in allowed:
            raise ProcurementError(
                ErrorKind.unauthorized,
                "Insufficient role",
                code="UNAUTHORIZED",
                context={"required": sorted(allowed), "role": user_role_value or None},
            )
        return user

    return dependency


# Read comparison data and open negotiations.
require_manager = require_roles(RoleName.procurement_manager, RoleName.procurement_staff)

# Approve or cancel quotations.
require_approver = require_roles(RoleName.procurement_manager)

require_viewer = require_roles(
    RoleName.procurement_manager, RoleName.procurement_staff, RoleName.viewer
)
