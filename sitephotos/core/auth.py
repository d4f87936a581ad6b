"""Bearer-token authentication against Supabase Auth."""
import logging
from typing import Optional

from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from .database import get_supabase

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


class TokenData(BaseModel):
    """Identity extracted from a Supabase JWT."""
    user_id: str
    email: Optional[str] = None


async def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> TokenData:
    """Validate the bearer JWT with Supabase and return the caller's identity."""
    token = credentials.credentials if credentials else None
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )

    try:
        response = get_supabase().auth.get_user(token)
    except Exception as e:
        logger.error(f"Authentication error: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication failed"
        )

    user = response.user if response else None
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )

    return TokenData(user_id=user.id, email=getattr(user, "email", None))
