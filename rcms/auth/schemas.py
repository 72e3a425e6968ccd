from enum import Enum
from typing import Optional
from pydantic import BaseModel


class Role(str, Enum):
    RN = "rn"
    ATTORNEY = "attorney"
    SUPERVISOR = "supervisor"


class TokenPayload(BaseModel):
    sub: Optional[str] = None
    role: Optional[Role] = None


class Principal(BaseModel):
    """Authenticated caller; ``id`` is the identity provider's subject."""
    id: str
    role: Role
