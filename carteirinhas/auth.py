import jwt
import logging
import secrets
from datetime import datetime, timedelta, timezone
from fastapi import HTTPException, status

from . import settings

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

def create_access_token(data: dict, expires_delta: timedelta = None) -> str:
    """Crea un token JWT para el panel de administración"""
    to_encode = data.copy()
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": datetime.now(timezone.utc) + expires_delta})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)

def verify_token(token: str) -> dict:
    """Verifica un token JWT"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired"
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )
    username = payload.get("sub")
    if username is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )
    return {"username": username}

def authenticate_user(username: str, password: str) -> bool:
    """Valida las credenciales del administrador"""
    ok_user = secrets.compare_digest(username.encode(), settings.AUTH_USERNAME.encode())
    ok_pass = secrets.compare_digest(password.encode(), settings.AUTH_PASSWORD.encode())
    if ok_user and ok_pass:
        logger.info(f"User '{username}' authenticated successfully")
        return True

    logger.warning(f"Failed login attempt with username: {username}")
    return False
