import jwt
import secrets
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Any
from sessionguard.utils.config import Config
from sessionguard.utils.errors import AuthError

logger = logging.getLogger(__name__)


class TokenService:
    """Issues and verifies signed, time-limited identity tokens (JWT)"""

    def __init__(self, secret_key: str = None, algorithm: str = None):
        self.secret_key = secret_key or Config.JWT_SECRET_KEY
        self.algorithm = algorithm or Config.JWT_ALGORITHM

    def issue(self, user_id: int, email: str, ttl: timedelta) -> str:
        """Sign a token for the user that expires after ttl"""
        now = datetime.now(timezone.utc)
        payload = {
            "id": user_id,
            "email": email,
            "iat": now,
            "exp": now + ttl,
            # Two logins in the same second must still yield distinct tokens
            "jti": secrets.token_hex(8),
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> Dict[str, Any]:
        """Return the token's claims, or raise AuthError"""
        if not token:
            raise AuthError("No token provided")

        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            logger.warning("Token has expired")
            raise AuthError("Token has expired")
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid token: {e}")
            raise AuthError("Invalid token")

        if "id" not in payload or "email" not in payload:
            raise AuthError("Invalid token")

        return {"id": payload["id"], "email": payload["email"]}
