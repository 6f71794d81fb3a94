"""FastAPI dependencies"""

from typing import Annotated, Callable

from fastapi import Depends, HTTPException, Request, status

from auth_service.core.config import logger
from auth_service.core.container import Container
from auth_service.core.errors import InvalidAccessToken
from auth_service.schemas.token import AccessTokenClaims
from auth_service.services.access_token_minter import AccessTokenMinter
from auth_service.services.auth_service import AuthService
from auth_service.services.user_service import UserService

ACCESS_TOKEN_COOKIE = "access_token"


def get_container(request: Request) -> Container:
    """Container built at startup"""
    return request.app.state.container


ContainerDep = Annotated[Container, Depends(get_container)]


# Service dependencies
def get_auth_service(container: ContainerDep) -> AuthService:
    """Get auth service instance"""
    return container.auth_service


def get_user_service(container: ContainerDep) -> UserService:
    """Get user service instance"""
    return container.user_service


def get_minter(container: ContainerDep) -> AccessTokenMinter:
    """Get access token minter instance"""
    return container.minter


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
UserServiceDep = Annotated[UserService, Depends(get_user_service)]
MinterDep = Annotated[AccessTokenMinter, Depends(get_minter)]


def get_client_ip(request: Request) -> str:
    """Client IP address, honouring proxy headers"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"


ClientIP = Annotated[str, Depends(get_client_ip)]


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_claims(request: Request, minter: MinterDep) -> AccessTokenClaims:
    """
    Verified claims of the caller

    The token is read from the ``Authorization: Bearer`` header, falling back
    to the ``access_token`` cookie.
    """
    token = None
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header[7:]  # Remove "Bearer " prefix
    if not token:
        token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if not token:
        raise _unauthorized()

    try:
        return minter.verify(token)
    except InvalidAccessToken as e:
        logger.debug(f"Access token rejected: {e}")
        raise _unauthorized() from e


CurrentClaims = Annotated[AccessTokenClaims, Depends(get_current_claims)]


def require_roles(*roles: str) -> Callable[[AccessTokenClaims], AccessTokenClaims]:
    """Dependency factory: caller must hold at least one of ``roles``"""

    def checker(claims: CurrentClaims) -> AccessTokenClaims:
        if not set(roles) & set(claims.roles):
            logger.warning(
                f"Forbidden: user {claims.sub} lacks roles {list(roles)}",
                extra={"user_id": claims.sub, "required_roles": list(roles)},
            )
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return claims

    return checker
