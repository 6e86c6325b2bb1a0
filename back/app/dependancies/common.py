# Standard library imports
from dataclasses import dataclass

# Third-party imports
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

# Local application imports
from app.services.issues.engine import IssueEngine
from app.services.issues.errors import NotAuthenticated
from app.settings import settings

# Bearer tokens are issued by the identity provider; only verified here
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    id: str
    is_authority: bool = False


def decode_principal(token: str) -> Principal:
    """Resolve a bearer token into the caller's identity."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise NotAuthenticated() from e

    subject = payload.get("sub")
    if not subject:
        raise NotAuthenticated()

    roles = payload.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]
    is_authority = settings.AUTHORITY_ROLE in roles or bool(payload.get("is_admin"))
    return Principal(id=str(subject), is_authority=is_authority)


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Principal:
    """Get the caller from the bearer token"""
    if credentials is None:
        raise NotAuthenticated()
    return decode_principal(credentials.credentials)


async def require_authority(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_authority:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only authorities can perform this action",
        )
    return principal


def get_issue_engine(request: Request) -> IssueEngine:
    return request.app.state.issue_engine
