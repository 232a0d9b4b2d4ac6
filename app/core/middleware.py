from typing import Optional
from fastapi import Request, HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.core.firebase import IdentityProvider
import logging

logger = logging.getLogger(__name__)

# auto_error=False so a missing header is reported as 401 rather than 403
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """
    Dependency resolving the authenticated caller through the identity provider
    stored on app.state. Rejects the request before any quota work is done.
    """
    logger.info("get_current_user: Entry")

    if credentials is None or not credentials.credentials:
        logger.warning("get_current_user: Missing bearer token")
        raise _unauthorized("Not authenticated")

    provider: IdentityProvider = request.app.state.identity_provider
    try:
        decoded_token = provider.verify_token(credentials.credentials)
    except Exception as e:
        logger.error(f"get_current_user: Failure - {e}")
        raise _unauthorized("Could not validate credentials")

    user_id = decoded_token.get('uid')
    if not user_id:
        logger.warning("get_current_user: Token without uid")
        raise _unauthorized("Invalid authentication credentials")

    request.state.user_id = user_id
    logger.info(f"get_current_user: Success - {user_id}")
    return {
        'uid': user_id,
        'email': decoded_token.get('email'),
        'token': decoded_token,
    }
