"""
Identity provider backed by Firebase Authentication.

The dashboard never manages accounts itself: a request is authenticated by a
Firebase ID token and identified by the token's ``uid``.
"""

from typing import Protocol, Optional, runtime_checkable
import firebase_admin
from firebase_admin import credentials, auth
from app.core.config import settings
import logging

logger = logging.getLogger(__name__)


@runtime_checkable
class IdentityProvider(Protocol):
    """Resolves a bearer token to decoded claims containing at least 'uid'"""

    def verify_token(self, token: str) -> dict:
        ...


def init_firebase():
    """Initialize Firebase Admin SDK"""
    logger.info("init_firebase: Entry")

    try:
        if not firebase_admin._apps:
            cred = credentials.Certificate(settings.firebase_credentials_path)
            firebase_admin.initialize_app(cred, {
                'projectId': settings.firebase_project_id,
            })
            logger.info("init_firebase: Success")
        else:
            logger.info("init_firebase: Already initialized")
    except Exception as e:
        logger.error(f"init_firebase: Failure - {e}")
        raise


class FirebaseIdentityProvider:
    """Verifies Firebase ID tokens; the auth module is injectable for tests"""

    def __init__(self, auth_provider: Optional[object] = None):
        self.auth_provider = auth_provider or auth
        self.logger = logging.getLogger(__name__)

    def verify_token(self, token: str) -> dict:
        self.logger.info("verify_token: Entry")

        try:
            decoded_token = self.auth_provider.verify_id_token(token)
            self.logger.info(f"verify_token: Success - {decoded_token.get('uid')}")
            return decoded_token
        except Exception as e:
            self.logger.error(f"verify_token: Failure - {e}")
            raise
