"""
Bearer token authentication

Tokens are HS256 JWTs carrying the user id. The signing secret comes from
configuration; when none is configured it is generated once and kept in the
system keyring.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import keyring
from Crypto.Random import get_random_bytes
from jose import JWTError, jwt

from connectu.core.errors import Unauthorized

SERVICE_NAME = "connectu"
SECRET_KEY = "jwt_secret"


def resolve_secret(configured: Optional[str] = None) -> str:
    """
    Return the JWT signing secret

    Args:
        configured: Secret from configuration, used as-is when present

    Returns:
        The configured secret, else the keyring one (created on first use)
    """
    if configured:
        return configured

    stored = keyring.get_password(SERVICE_NAME, SECRET_KEY)
    if stored:
        return stored

    secret = get_random_bytes(32).hex()
    keyring.set_password(SERVICE_NAME, SECRET_KEY, secret)
    return secret


class TokenManager:
    """Issues and verifies signed bearer tokens"""

    def __init__(self, secret: str, algorithm: str = "HS256", expire_days: int = 30):
        self.secret = secret
        self.algorithm = algorithm
        self.expire_days = expire_days

    def issue(self, user_id: str) -> str:
        """
        Create a token for a user

        Args:
            user_id: Id stored in the ``id`` claim

        Returns:
            Encoded JWT
        """
        expire = datetime.now(timezone.utc) + timedelta(days=self.expire_days)
        return jwt.encode({"id": user_id, "exp": expire}, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> str:
        """
        Validate a token and return its user id

        Raises:
            Unauthorized: If the token is missing, malformed, expired or
                signed with another secret
        """
        if not token:
            raise Unauthorized("Not authorized, no token provided")
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError:
            raise Unauthorized("Not authorized, token invalid or expired")

        user_id = payload.get("id")
        if not user_id:
            raise Unauthorized("Not authorized, token invalid or expired")
        return user_id
