# auth.py
# ----------------------------------------
# Identity from the Supabase access token.
# Sign-up / sign-in / verification live in Supabase Auth;
# this service only reads who the caller is.
# ----------------------------------------

from dataclasses import dataclass
import logging
import os
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, Header, HTTPException
import jwt

from quiz.errors import NotAuthenticated

load_dotenv()

logger = logging.getLogger("haftify.auth")

SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET")
JWT_AUDIENCE = "authenticated"


@dataclass(frozen=True)
class Identity:
    user_id: str
    email_verified: bool


def decode_token(token: str, secret: Optional[str] = None) -> Identity:
    secret = secret or SUPABASE_JWT_SECRET
    if not token or not secret:
        raise NotAuthenticated()

    try:
        claims = jwt.decode(token, secret, algorithms=["HS256"], audience=JWT_AUDIENCE)
    except jwt.PyJWTError as e:
        logger.warning("⚠️ [AUTH] rejected token: %s", e)
        raise NotAuthenticated("Invalid or expired token") from e

    user_id = claims.get("sub")
    if not user_id:
        raise NotAuthenticated("Token has no subject")

    metadata = claims.get("user_metadata") or {}
    verified = bool(claims.get("email_verified") or metadata.get("email_verified"))

    return Identity(user_id=user_id, email_verified=verified)


def current_identity(authorization: Optional[str] = Header(default=None)) -> Identity:
    """FastAPI dependency: `Authorization: Bearer <jwt>`."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise NotAuthenticated()
    return decode_token(authorization.split(" ", 1)[1].strip())


def verified_identity(identity: Identity = Depends(current_identity)) -> Identity:
    if not identity.email_verified:
        raise HTTPException(status_code=403, detail="Email not verified")
    return identity
