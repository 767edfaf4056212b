from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from app.config import settings
from app.schemas.auth import TokenData


def create_access_token(subject: str, email: str | None = None, name: str | None = None) -> str:
    """Issue a token in the format ``decode_token`` accepts (dev tooling and tests)."""
    expire = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    payload: dict = {"sub": subject, "exp": expire}
    if email is not None:
        payload["email"] = email
    if name is not None:
        payload["name"] = name
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> TokenData:
    payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    subject: str | None = payload.get("sub")
    if not subject:
        raise JWTError("missing sub")
    return TokenData(subject=subject, email=payload.get("email"), name=payload.get("name"))
