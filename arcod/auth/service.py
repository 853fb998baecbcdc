"""Bearer token verification."""

import logging
from functools import lru_cache
from typing import Optional

import jwt

from arcod.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


@lru_cache
def _jwks_client(url: str) -> jwt.PyJWKClient:
    return jwt.PyJWKClient(url)


class AuthService:
    """Validates bearer credentials issued by the identity provider."""

    @staticmethod
    def _strip_scheme(credential: str) -> str:
        token = (credential or "").strip()
        if token.lower().startswith("bearer "):
            token = token[7:].strip()
        return token

    @staticmethod
    def decode_token(token: str) -> Optional[dict]:
        """Decode and validate a JWT token."""
        audience = (settings.JWT_AUDIENCE or "").strip() or None
        try:
            if settings.JWT_JWKS_URL:
                signing_key = _jwks_client(settings.JWT_JWKS_URL).get_signing_key_from_jwt(token)
                key = signing_key.key
                algorithms = ["RS256"]
            else:
                key = settings.JWT_SECRET_KEY
                algorithms = [settings.JWT_ALGORITHM]
            return jwt.decode(
                token,
                key,
                algorithms=algorithms,
                audience=audience,
                options={"verify_aud": audience is not None},
            )
        except jwt.ExpiredSignatureError:
            return None
        except jwt.PyJWTError as e:
            logger.warning(f"Token verification failed: {e}")
            return None

    @classmethod
    def verify(cls, credential: str) -> Optional[dict]:
        """
        Returns ``{"id": <sub>, "email": <email or None>}`` for a valid
        credential, ``None`` otherwise.
        """
        token = cls._strip_scheme(credential)
        if not token:
            return None
        payload = cls.decode_token(token)
        if not payload or not payload.get("sub"):
            return None
        return {
            "id": str(payload["sub"]),
            "email": payload.get("email"),
        }
