# Overview: Signed identity tokens; issue at login, resolve on every request.

"""
Session / Identity Resolver

Tokens are stateless HS256 JWTs carrying the identity claim
{userId, email, role, permissions, branch}. Resolution never raises: any
missing, malformed, expired or forged token resolves to None and the
caller answers 401.

The verification primitive is injectable (TokenVerifier) so tests and
alternative deployments can swap it without touching callers.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Protocol

import jwt
from flask import current_app, has_app_context

from ..config import Config
from ..permissions import Identity

logger = logging.getLogger(__name__)


class TokenVerifier(Protocol):
    def verify(self, token: str) -> dict:
        """Return the token's claims or raise on any verification failure."""


class JwtVerifier:
    """PyJWT-backed verifier/issuer using the configured shared secret."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.secret = secret
        self.algorithm = algorithm

    def verify(self, token: str) -> dict:
        return jwt.decode(token, self.secret, algorithms=[self.algorithm])

    def sign(self, claims: dict) -> str:
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)


def default_verifier() -> JwtVerifier:
    cfg = current_app.config if has_app_context() else vars(Config)
    return JwtVerifier(cfg["JWT_SECRET"], cfg.get("JWT_ALGORITHM", "HS256"))


def claims_for(identity: Identity) -> dict:
    return {
        "userId": identity.user_id,
        "email": identity.email,
        "role": identity.role,
        "permissions": sorted(identity.permissions),
        "branch": identity.branch,
    }


def identity_from_claims(claims: dict) -> Identity | None:
    """Build an Identity from decoded claims; None if required claims are missing."""
    if not isinstance(claims, dict):
        return None
    user_id = claims.get("userId")
    role = claims.get("role")
    if user_id in (None, "") or not role or not isinstance(role, str):
        return None
    permissions = claims.get("permissions") or []
    if not isinstance(permissions, (list, tuple)):
        return None
    return Identity.build(
        user_id=user_id,
        email=claims.get("email"),
        role=role,
        permissions=permissions,
        branch=claims.get("branch"),
    )


def issue_token(identity: Identity, *, expires_in: timedelta | None = None, verifier: JwtVerifier | None = None) -> str:
    """Sign a token for an identity (default lifetime: JWT_EXPIRES_MINUTES)."""
    verifier = verifier or default_verifier()
    if expires_in is None:
        minutes = current_app.config["JWT_EXPIRES_MINUTES"] if has_app_context() else Config.JWT_EXPIRES_MINUTES
        expires_in = timedelta(minutes=minutes)
    now = datetime.now(timezone.utc)
    claims = claims_for(identity)
    claims.update({"iat": now, "exp": now + expires_in})
    return verifier.sign(claims)


def resolve(token: str | None, verifier: TokenVerifier | None = None) -> Identity | None:
    """
    Verify a token and return the identity it asserts, or None.

    Never raises.
    """
    if not token or not isinstance(token, str):
        return None
    try:
        verifier = verifier or default_verifier()
        claims = verifier.verify(token)
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired token")
        return None
    except jwt.InvalidTokenError:
        return None
    except Exception:
        # Injected verifiers may raise anything; resolution stays total
        logger.warning("Token verifier failed", exc_info=True)
        return None
    return identity_from_claims(claims)
