import jwt
import uuid
from datetime import datetime, timedelta, timezone
from storefront.config import get_settings


def create_access_token(user_id: int, role: str = "customer") -> tuple[str, str, datetime]:
    """
    Create JWT token
    Returns: (token, jti, expires_at)
    """
    settings = get_settings()
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(hours=settings.JWT_EXPIRATION_HOURS)

    payload = {
        "sub": str(user_id),  # Subject (user ID)
        "role": role,
        "jti": jti,  # JWT ID
        "exp": expires_at,  # Expiration
        "iat": now,  # Issued at
    }

    token = jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return token, jti, expires_at


def decode_access_token(token: str) -> dict:
    """Decode and validate JWT token"""
    settings = get_settings()
    try:
        payload = jwt.decode(
            token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
        )
        return payload
    except jwt.ExpiredSignatureError:
        raise ValueError("Token expired")
    except jwt.InvalidTokenError as e:
        raise ValueError(f"Invalid token: {str(e)}")
