"""
Caller identification helpers and FastAPI dependencies.
"""
from typing import Optional

from fastapi import Depends, Header, Request

from ..core.errors import SupportBotError
from ..core.identity import Authenticated, Identity, IdentityResolver


class UnauthorizedError(SupportBotError):
    code = "UNAUTHORIZED"
    status_code = 403


class AuthenticationRequiredError(SupportBotError):
    code = "AUTHENTICATION_REQUIRED"
    status_code = 401


def get_client_origin(request: Request) -> Optional[str]:
    """First forwarded hop, then X-Real-IP, then the socket peer."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    if request.client is not None and request.client.host:
        return request.client.host
    return None


async def get_bearer_token(
    request: Request,
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> Optional[str]:
    """Bearer token from the Authorization header, else the `token` cookie."""
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
        if token:
            return token
    return request.cookies.get("token")


async def get_caller_identity(
    request: Request,
    token: Optional[str] = Depends(get_bearer_token),
) -> Identity:
    """
    Resolve the caller. A valid token for a missing or inactive user is
    treated as anonymous, like a caller without a token.
    """
    services = request.app.state.services
    resolver: IdentityResolver = services["identity_resolver"]
    origin = get_client_origin(request)

    identity = resolver.resolve(token, origin)
    if isinstance(identity, Authenticated):
        user = await services["user_repo"].get_active_user(identity.user_id)
        if user is None:
            return resolver.anonymous(origin)
    return identity


async def require_system_key(
    request: Request,
    x_api_key: Optional[str] = Header(None, alias="X-API-KEY"),
) -> bool:
    """Guard for moderation endpoints."""
    expected_key = request.app.state.services["config"].system_api_key
    if not expected_key or x_api_key != expected_key:
        raise UnauthorizedError("Unauthorized access to system endpoint")
    return True


async def require_authenticated(identity: Identity = Depends(get_caller_identity)) -> Authenticated:
    """Guard for endpoints that only make sense for signed-in users."""
    if not isinstance(identity, Authenticated):
        raise AuthenticationRequiredError("Sign in to manage saved memories")
    return identity
