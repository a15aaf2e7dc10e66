# dependencies/auth.py
import hmac
from fastapi import HTTPException, Header
from typing import Optional
from storesync.config import config

def _forbidden(reason: str) -> HTTPException:
    return HTTPException(status_code=403, detail=reason)

async def verify_token(authorization: Optional[str] = Header(None)) -> str:
    """Accept only 'Bearer <API_TOKEN>'. An unset API_TOKEN rejects every request."""
    if not authorization:
        raise _forbidden("Authorization header missing")

    scheme, _, token = authorization.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        raise _forbidden("Expected 'Authorization: Bearer <token>'")

    if not config.API_TOKEN or not hmac.compare_digest(token.strip().encode(), config.API_TOKEN.encode()):
        raise _forbidden("Invalid token")

    return token.strip()
