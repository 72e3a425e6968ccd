import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from pydantic import ValidationError

from rcms.auth import security
from rcms.auth.schemas import Principal, Role, TokenPayload
from rcms.config import settings

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/token")


async def get_current_user(token: str = Depends(oauth2_scheme)) -> Principal:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = TokenPayload.model_validate(security.decode_access_token(token))
    except (JWTError, ValidationError):
        raise credentials_exception
    if payload.sub is None or payload.role is None:
        raise credentials_exception
    return Principal(id=payload.sub, role=payload.role)


class CheckRole:
    """FastAPI dependency that checks the current user holds one of the given roles."""

    def __init__(self, *roles: Role):
        self.roles = set(roles)

    async def __call__(self, user: Principal = Depends(get_current_user)) -> Principal:
        if user.role not in self.roles:
            logger.warning(f"{user.role.value} {user.id} denied; requires {sorted(r.value for r in self.roles)}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(sorted(r.value for r in self.roles))}",
            )
        return user


require_rn = CheckRole(Role.RN)
require_supervisor = CheckRole(Role.SUPERVISOR)
require_intake = CheckRole(Role.RN, Role.SUPERVISOR)
any_role = CheckRole(Role.RN, Role.ATTORNEY, Role.SUPERVISOR)
