# app/core/security.py
"""
Token handling.
Players authenticate against the external auth service, which signs HS256
access tokens with the shared JWT_SECRET. This module only decodes them;
`create_access_token` exists for tooling and tests.
"""
import os
import datetime as dt
import jwt  # PyJWT
from dotenv import load_dotenv
from pathlib import Path

# Load environment variables from project root
ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(dotenv_path=ENV_PATH)

# JWT configuration
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret")  # Shared with the auth service (use strong secret in production)
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
JWT_ALG = "HS256"  # HMAC SHA-256

def create_access_token(user_id: str, role: str) -> str:
    """
    Create a JWT access token.

    Args:
        user_id: Player UUID string (becomes `sub`)
        role: "user" or "admin"

    Returns:
        Encoded JWT token string with sub, role, iat and exp claims
    """
    now = dt.datetime.now(dt.timezone.utc)
    payload = {
        "sub": user_id,
        "role": role,
        "iat": now,
        "exp": now + dt.timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)

def decode_access_token(token: str) -> dict:
    """
    Decode and validate a JWT access token.

    Raises:
        jwt.ExpiredSignatureError: If token has expired
        jwt.InvalidTokenError: If token is invalid or malformed
    """
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
