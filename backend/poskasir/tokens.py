# Overview: Signed, time-limited session tokens carried in cookies.

from __future__ import annotations

import time
import uuid
from datetime import datetime, timedelta, timezone

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .errors import UnauthorizedError

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"


class TokenManager:
    """
    Issues and verifies session tokens.

    Payload claims: username, email, role, user_id, type, iss, sub, iat, nbf,
    exp and a random jti so rotated tokens never repeat. Signature and age are
    checked by itsdangerous; issuer, type and exp are checked here.
    """

    def __init__(self, secret: str, issuer: str, access_ttl: timedelta, refresh_ttl: timedelta):
        self.issuer = issuer
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._serializer = URLSafeTimedSerializer(secret, salt="poskasir-session")

    def _ttl(self, token_type: str) -> timedelta:
        return self.refresh_ttl if token_type == TOKEN_TYPE_REFRESH else self.access_ttl

    def _issue(self, user, token_type: str) -> tuple[str, datetime]:
        now = int(time.time())
        exp = now + int(self._ttl(token_type).total_seconds())
        claims = {
            "username": user.username,
            "email": user.email,
            "role": user.role,
            "user_id": str(user.id),
            "type": token_type,
            "iss": self.issuer,
            "sub": str(user.id),
            "iat": now,
            "nbf": now,
            "exp": exp,
            "jti": uuid.uuid4().hex,
        }
        expires_at = datetime.fromtimestamp(exp, tz=timezone.utc).replace(tzinfo=None)
        return self._serializer.dumps(claims), expires_at

    def generate_access_token(self, user) -> tuple[str, datetime]:
        return self._issue(user, TOKEN_TYPE_ACCESS)

    def generate_refresh_token(self, user) -> tuple[str, datetime]:
        return self._issue(user, TOKEN_TYPE_REFRESH)

    def verify(self, token: str, expected_type: str = TOKEN_TYPE_ACCESS) -> dict:
        """Return the claims or raise UnauthorizedError."""
        max_age = int(self._ttl(expected_type).total_seconds())
        try:
            claims = self._serializer.loads(token, max_age=max_age)
        except SignatureExpired:
            raise UnauthorizedError("Token expired")
        except BadSignature:
            raise UnauthorizedError("Invalid token")

        if not isinstance(claims, dict):
            raise UnauthorizedError("Invalid token")
        if claims.get("iss") != self.issuer or claims.get("type") != expected_type:
            raise UnauthorizedError("Invalid token")
        now = int(time.time())
        if claims.get("exp", 0) <= now or claims.get("nbf", now) > now:
            raise UnauthorizedError("Token expired")
        return claims


def build_token_manager(config) -> TokenManager:
    return TokenManager(
        secret=config["JWT_SECRET"],
        issuer=config["JWT_ISSUER"],
        access_ttl=timedelta(hours=config["JWT_DURATION_HOURS"]),
        refresh_ttl=timedelta(days=config["JWT_REFRESH_DURATION_DAYS"]),
    )


def get_token_manager() -> TokenManager:
    return current_app.extensions["token_manager"]
