"""
Security Module

Password hashing, JWT access tokens and HMAC payload signing.

- Passwords are hashed with bcrypt (passlib)
- JWT tokens (python-jose) carry the user id and the tenant they were
  issued for; a token is only valid for that tenant
- Integration payloads are signed with HMAC-SHA256 using the tenant's
  active signing secret and sent in the X-MCP-Signature header
"""
import base64
import hashlib
import hmac
import secrets
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, Union
from jose import JWTError, jwt
from passlib.context import CryptContext
from portal.config import get_settings

settings = get_settings()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt. Slow on purpose; keep out of loops."""
    return pwd_context.hash(password)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Token payload includes:
    - sub: user_id
    - tenant_id: tenant the token was issued for
    - exp: expiration timestamp
    - iat: issued at timestamp
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({
        "exp": expire,
        "iat": datetime.utcnow()
    })

    return jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and verify a JWT token.

    Returns the payload if valid, None if invalid/expired.
    """
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
    except JWTError:
        return None


# ============================================================================
# HMAC SIGNING
# ============================================================================

def _as_bytes(value: Union[str, bytes]) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def sign_payload(secret: str, body: Union[str, bytes]) -> str:
    """Sign a payload body with HMAC-SHA256; returns the hex digest."""
    return hmac.new(
        secret.encode("utf-8"),
        _as_bytes(body),
        hashlib.sha256
    ).hexdigest()


def verify_signature(secret: str, body: Union[str, bytes], signature: str) -> bool:
    """Verify a hex HMAC signature in constant time."""
    if not signature:
        return False
    expected = sign_payload(secret, body)
    # str compare_digest rejects non-ASCII input, so compare bytes
    return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8"))


def generate_secret() -> str:
    """New signing secret: 32 random bytes, base64 encoded."""
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


def generate_reveal_token() -> str:
    """Single-use token handed out once when a secret is issued."""
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    """Reveal tokens are stored hashed; only the caller ever sees the raw value."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
