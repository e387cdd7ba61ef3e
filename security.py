"""
Credential hashing, one-time passwords and signed session tokens.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from config import Settings
from errors import ExpiredToken, InvalidToken

OTP_LOW = 100000
OTP_HIGH = 999999


class Hasher:
    """bcrypt for passwords and OTP codes; passlib's verify is constant-time."""

    def __init__(self, rounds: int = 10):
        self.context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    def hash(self, secret: str) -> str:
        return self.context.hash(secret)

    def verify(self, secret: str, hashed: Optional[str]) -> bool:
        if not secret or not hashed:
            return False
        return self.context.verify(secret, hashed)


def generate_otp() -> str:
    return str(OTP_LOW + secrets.randbelow(OTP_HIGH - OTP_LOW + 1))


def as_utc(value: datetime) -> datetime:
    # pymongo hands datetimes back naive, in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def otp_expired(expiry: Optional[datetime], now: datetime) -> bool:
    if expiry is None:
        return True
    return as_utc(now) > as_utc(expiry)


class TokenAuthority:
    def __init__(self, secret: str, algorithm: str = "HS256", expire_minutes: int = 60 * 24):
        self.secret = secret
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenAuthority":
        return cls(settings.jwt_secret, settings.jwt_algorithm, settings.jwt_expire_minutes)

    def issue(self, claims: Dict[str, Any], now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        to_encode = {"iat": now, **claims}
        if self.expire_minutes:
            to_encode["exp"] = now + timedelta(minutes=self.expire_minutes)
        return jwt.encode(to_encode, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise ExpiredToken("Token expired, please log in again")
        except JWTError:
            raise InvalidToken("Authentication failed")
