"""
Request authentication.

Two kinds of bearer tokens reach the API:
- application access tokens (python-jose, issued at login/registration),
  accepted by every authenticated route through get_current_user_id;
- identity-provider tokens (Supabase-style JWTs, verified with PyJWT),
  accepted only by /auth/sync-user on OAuth sign-in.
"""
import logging
import os
from typing import Optional

import jwt  # PyJWT
from fastapi import Header

from app.core.errors import ConfigurationError, Unauthenticated
from app.utils.auth import verify_token

logger = logging.getLogger(__name__)

IDENTITY_TOKEN_AUDIENCE = "authenticated"


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise Unauthenticated("Missing authorization header")
    if not authorization.startswith("Bearer "):
        raise Unauthenticated("Invalid header format. Expected 'Bearer <token>'")
    token = authorization.replace("Bearer ", "", 1).strip()
    # Reject common invalid token values sent by browsers before sign-in finishes
    if not token or token.lower() in ("null", "undefined", "none"):
        raise Unauthenticated("Missing token")
    return token


def get_current_user_id(authorization: Optional[str] = Header(None)) -> str:
    """FastAPI dependency: resolve the account id from an application access token."""
    token = _bearer_token(authorization)
    payload = verify_token(token)
    if not payload:
        raise Unauthenticated("Your session has expired. Please sign in again.")
    user_id = payload.get("sub")
    if not user_id:
        raise Unauthenticated("Invalid token payload")
    return str(user_id)


def verify_identity_token(authorization: Optional[str] = Header(None)) -> dict:
    """
    Verify an identity-provider JWT.
    HS256 uses SUPABASE_JWT_SECRET; ES256/RS256 use the provider's JWKS.
    Returns the verified payload.
    """
    token = _bearer_token(authorization)
    try:
        algo = jwt.get_unverified_header(token).get("alg")
    except jwt.PyJWTError as e:
        logger.info("[AUTH] Failed to decode identity token header: %s", e)
        raise Unauthenticated("Invalid token header") from e

    if algo == "HS256":
        secret = os.getenv("SUPABASE_JWT_SECRET")
        if not secret:
            raise ConfigurationError("Server misconfiguration: SUPABASE_JWT_SECRET not set")
        key = secret
    elif algo in ("ES256", "RS256"):
        supabase_url = os.getenv("SUPABASE_URL")
        if not supabase_url:
            raise ConfigurationError("Server misconfiguration: SUPABASE_URL not set")
        try:
            # PyJWT finds the right key from the JWKS by kid
            jwks_client = jwt.PyJWKClient(f"{supabase_url}/auth/v1/.well-known/jwks.json")
            key = jwks_client.get_signing_key_from_jwt(token).key
        except jwt.PyJWTError as e:
            logger.warning("[AUTH] Could not resolve signing key: %s", e)
            raise Unauthenticated("Invalid token signature") from e
    else:
        raise Unauthenticated(f"Unsupported token algorithm: {algo}")

    try:
        payload = jwt.decode(
            token,
            key,
            algorithms=[algo],
            audience=IDENTITY_TOKEN_AUDIENCE,
            options={"verify_aud": True},
        )
    except jwt.PyJWTError as e:
        logger.info("[AUTH] %s verification failed: %s", algo, e)
        raise Unauthenticated("Invalid token signature") from e
    return payload
