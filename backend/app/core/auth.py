"""
FastAPI authentication dependencies.

Resolves the bearer token on a request into an Actor (actor id + role).
Failures raise Unauthorized, which the lifecycle error handler renders as 401.
"""
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.error_responses import ErrorMessages
from app.core.lifecycle.errors import Unauthorized
from app.core.lifecycle.state_machine import Actor, Role
from .security import decode_token, verify_token_type

# auto_error=False so a missing header goes through the same Unauthorized
# path as a bad token.
security = HTTPBearer(auto_error=False)


def actor_from_token(token: str) -> Actor:
    """
    Decode and validate an access token, returning the actor it names.

    Args:
        token: The JWT token string

    Returns:
        Actor built from the ``sub`` and ``role`` claims

    Raises:
        Unauthorized: If the token is invalid, expired, of the wrong type, or
            missing a claim
    """
    payload = decode_token(token)
    if payload is None:
        raise Unauthorized(ErrorMessages.INVALID_TOKEN)

    if not verify_token_type(payload, "access"):
        raise Unauthorized(ErrorMessages.INVALID_TOKEN_TYPE)

    actor_id = payload.get("sub")
    role = payload.get("role")
    if not actor_id or role is None:
        raise Unauthorized(ErrorMessages.INVALID_TOKEN_PAYLOAD)

    try:
        return Actor(actor_id=str(actor_id), role=Role(role))
    except ValueError:
        raise Unauthorized(ErrorMessages.INVALID_TOKEN_PAYLOAD) from None


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Actor:
    """
    Get the authenticated actor from the Authorization header.

    Raises:
        Unauthorized: 401 if the header is missing or the token is invalid
    """
    if credentials is None:
        raise Unauthorized(ErrorMessages.NOT_AUTHENTICATED)
    return actor_from_token(credentials.credentials)
