from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from app.millstock.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/millstock/auth/login")

ACCESS_TOKEN_TYPE = "access"


class TokenData(BaseModel):
    sub: str
    role: str
    username: str


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(claims: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    issued_at = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {**claims, "typ": ACCESS_TOKEN_TYPE, "iat": issued_at, "exp": issued_at + lifetime}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict[str, Any]:
    payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    if payload.get("typ") != ACCESS_TOKEN_TYPE:
        raise JWTError("not an access token")
    return payload


def create_user_access_token(user, expires_delta: timedelta | None = None) -> str:
    # Activity and warehouse assignments are read from the database on every request.
    return create_access_token(
        {"sub": str(user.id), "role": user.role, "username": user.username},
        expires_delta=expires_delta,
    )
