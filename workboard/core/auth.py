from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from ..config import settings
from .context import ActorContext
from .permissions import Permission, PERMISSION_DENIED_MESSAGES

security = HTTPBearer()

def create_access_token(
    user_id: int,
    organization_id: int,
    permissions: Iterable[str] = (),
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create JWT access token carrying the actor's organization and capabilities"""

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode = {
        "sub": str(user_id),
        "org": str(organization_id),
        "permissions": [str(getattr(p, "value", p)) for p in permissions],
        "exp": expire
    }
    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)

    return encoded_jwt

async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> ActorContext:
    """Build the actor context from a validated JWT"""

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.secret_key,
            algorithms=[settings.algorithm]
        )
        user_id = payload.get("sub")
        organization_id = payload.get("org")
        if user_id is None or organization_id is None:
            raise credentials_exception

        return ActorContext.build(user_id, organization_id, payload.get("permissions", []))

    except (JWTError, ValueError):
        raise credentials_exception

def require_permission(permission: Permission):
    """Dependency factory that checks one capability of the current actor"""

    def checker(actor: ActorContext = Depends(get_current_actor)) -> ActorContext:
        if not actor.has_permission(permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"error": PERMISSION_DENIED_MESSAGES[permission]}
            )
        return actor

    return checker
