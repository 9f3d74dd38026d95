# security.py
from fastapi import HTTPException, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError, ExpiredSignatureError
from datetime import datetime, timedelta, timezone
import logging
import os

logger = logging.getLogger(__name__)

security = HTTPBearer()

# Environment variables
SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

def create_access_token(data: dict, expires_delta: timedelta = None):
    """Create a new access token"""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

def decode_token(token: str) -> dict:
    """Decode and verify a token"""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(security)
):
    """Return the verified caller identity"""
    payload = decode_token(credentials.credentials)
    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=401,
            detail="Invalid token: missing user_id"
        )
    return {
        "user_id": user_id,
        "role": payload.get("role", "user")
    }

def get_current_admin(
    credentials: HTTPAuthorizationCredentials = Security(security)
):
    """Verify and return admin credentials"""
    payload = decode_token(credentials.credentials)
    if payload.get("role") != "admin":
        logger.warning(f"Rejected admin access for user {payload.get('user_id')}")
        raise HTTPException(
            status_code=403,
            detail="Not authorized as Admin"
        )
    return payload

def create_user_token(user_id: str) -> str:
    """Create token for a hospital user"""
    return create_access_token({"role": "user", "user_id": user_id})

def create_admin_token(admin_id: str) -> str:
    """Create token for the fulfilment admin"""
    return create_access_token({"role": "admin", "user_id": admin_id})
