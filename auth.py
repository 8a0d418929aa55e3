"""Bearer-token sessions and the checkout gate.

Every session is backed by a server-issued JWT. There is no locally
fabricated session: a token the verifier cannot decode is rejected no matter
what it looks like.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import jwt

from config import settings
from errors import AuthError, PermissionDeniedError
from repositories import UserRepository
from schemas import Cart, UserInfo, utc_now

ALGORITHM = "HS256"
TOKEN_LIFETIMES = {
    "customer": timedelta(days=30),
    "admin": timedelta(hours=8),
}


def issue_token(user_id: str, user_type: str = "customer", secret: Optional[str] = None, now: Optional[datetime] = None) -> str:
    now = now or utc_now()
    claims = {
        "id": user_id,
        "userType": user_type,
        "iat": now,
        "exp": now + TOKEN_LIFETIMES[user_type],
    }
    return jwt.encode(claims, secret or settings.JWT_SECRET, algorithm=ALGORITHM)


@dataclass
class Session:
    user: Optional[UserInfo] = None
    token: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


class TokenVerifier:
    def __init__(self, users: UserRepository, secret: Optional[str] = None):
        self.users = users
        self.secret = secret or settings.JWT_SECRET

    def verify(self, token: str) -> UserInfo:
        try:
            claims = jwt.decode(token, self.secret, algorithms=[ALGORITHM])
        except jwt.PyJWTError as exc:
            raise AuthError("Not authorized, token failed") from exc
        user = self.users.get(str(claims.get("id", "")))
        if user is None:
            raise AuthError("Not authorized, user not found")
        return user

    def session(self, authorization: Optional[str]) -> Session:
        """Build a session from an ``Authorization`` header value."""
        if not authorization:
            return Session()
        scheme, _, token = authorization.partition(" ")
        token = token.strip()
        if scheme.lower() != "bearer" or not token:
            raise AuthError("Not authorized, no token")
        return Session(user=self.verify(token), token=token)


def can_checkout(session: Session, cart: Cart) -> bool:
    return session.is_authenticated and len(cart.items) > 0


def require_user(session: Session) -> UserInfo:
    if session.user is None:
        raise AuthError("Not authorized, no token")
    return session.user


def require_admin(session: Session) -> UserInfo:
    user = require_user(session)
    if not user.is_admin:
        raise PermissionDeniedError("Not authorized as an admin")
    return user
