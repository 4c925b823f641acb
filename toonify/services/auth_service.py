"""Bearer token verification.

Tokens are issued by the external auth provider as HS256 JWTs; we only
verify them and read the caller's identity.
"""
import logging
from dataclasses import dataclass

import jwt
from flask import current_app

from toonify.errors import ConfigMissing, Unauthorized

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Caller:
    user_id: str
    email: str = ""


def authenticate(auth_header):
    """Return the Caller for an ``Authorization: Bearer <jwt>`` header."""
    if not auth_header or not auth_header.lower().startswith("bearer "):
        raise Unauthorized("Missing bearer token")
    token = auth_header.split(" ", 1)[1].strip()
    if not token:
        raise Unauthorized("Missing bearer token")

    secret = current_app.config["AUTH_JWT_SECRET"]
    if not secret:
        raise ConfigMissing("Auth configuration is missing")

    audience = current_app.config.get("AUTH_JWT_AUDIENCE") or None
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[current_app.config["AUTH_JWT_ALGORITHM"]],
            audience=audience,
            options={"require": ["sub", "exp"]},
        )
    except jwt.PyJWTError as e:
        logger.info("Rejected bearer token: %s", e)
        raise Unauthorized("Invalid or expired token") from e

    return Caller(user_id=str(claims["sub"]), email=claims.get("email", ""))
