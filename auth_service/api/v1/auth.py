"""Authentication endpoints: register, login, refresh, revoke, revoke-all, me"""

from fastapi import APIRouter, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from auth_service.core.config import logger
from auth_service.core.dependencies import (
    ACCESS_TOKEN_COOKIE,
    AuthServiceDep,
    ClientIP,
    ContainerDep,
    CurrentClaims,
    UserServiceDep,
)
from auth_service.core.errors import AuthServiceError, StoreUnavailable
from auth_service.schemas.token import (
    LoginRequest,
    MessageResponse,
    RefreshTokenRequest,
    TokenResponse,
)
from auth_service.schemas.user import ProfileResponse, UserCreate, UserResponse
from auth_service.services.access_token_minter import AccessTokenMinter

router = APIRouter()


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(body: UserCreate, users: UserServiceDep):
    """Register a new user with the default ``User`` role"""
    try:
        user = await users.create_user(body)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e

    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        is_active=user.is_active,
        roles=user.role_names,
        created_at=user.created_at,
        last_login_at=user.last_login_at,
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    auth: AuthServiceDep,
    container: ContainerDep,
    ip_address: ClientIP,
):
    """
    Login: return access_token and refresh_token

    The access token is also set as an HttpOnly ``access_token`` cookie.
    """
    result = await auth.login(
        body.username,
        body.password,
        ip_address=ip_address,
        user_agent=request.headers.get("User-Agent"),
    )
    if not result.ok:
        return _error_response(result.error)

    _set_access_cookie(response, result.value, secure=container.settings.access_cookie_secure)
    return result.value


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    body: RefreshTokenRequest,
    request: Request,
    response: Response,
    auth: AuthServiceDep,
    container: ContainerDep,
    ip_address: ClientIP,
):
    """Use refresh token to obtain new access and refresh tokens (rotation)"""
    result = await auth.refresh(
        body.refresh_token,
        ip_address=ip_address,
        user_agent=request.headers.get("User-Agent"),
    )
    if not result.ok:
        return _error_response(result.error)

    _set_access_cookie(response, result.value, secure=container.settings.access_cookie_secure)
    return result.value


@router.post("/revoke", response_model=MessageResponse)
async def revoke(
    body: RefreshTokenRequest,
    request: Request,
    auth: AuthServiceDep,
    ip_address: ClientIP,
):
    """Revoke a refresh token; already inactive tokens are acknowledged too"""
    result = await auth.revoke(
        body.refresh_token,
        ip_address=ip_address,
        user_agent=request.headers.get("User-Agent"),
    )
    if not result.ok:
        return _error_response(result.error)

    return MessageResponse(message="Refresh token revoked")


@router.post("/revoke-all", response_model=MessageResponse)
async def revoke_all(
    claims: CurrentClaims,
    request: Request,
    auth: AuthServiceDep,
    ip_address: ClientIP,
):
    """Log out everywhere: revoke every refresh token of the caller"""
    result = await auth.revoke_all(
        claims.sub,
        ip_address=ip_address,
        user_agent=request.headers.get("User-Agent"),
    )
    if not result.ok:
        return _error_response(result.error)

    return MessageResponse(message=f"Revoked {result.value} refresh tokens")


@router.get("/me", response_model=ProfileResponse)
async def me(claims: CurrentClaims):
    """Profile of the caller, read from the verified access token"""
    return ProfileResponse(
        user_id=claims.sub,
        username=claims.name,
        roles=claims.roles,
        token_id=claims.jti,
        expires_at=AccessTokenMinter.expires_at(claims),
    )


def _set_access_cookie(response: Response, tokens: TokenResponse, secure: bool) -> None:
    response.set_cookie(
        key=ACCESS_TOKEN_COOKIE,
        value=tokens.access_token,
        max_age=tokens.expires_in,
        httponly=True,
        secure=secure,
        samesite="strict",
    )


def _error_response(error: AuthServiceError) -> JSONResponse:
    """
    Map a lifecycle error to a response

    Credential and refresh-token failures are all a bare 401: the client
    never learns whether a token was unknown, expired or revoked.
    """
    if isinstance(error, StoreUnavailable):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Service temporarily unavailable"},
        )

    logger.debug(
        f"Request rejected: {error.error_code}",
        extra={"error_code": error.error_code, "details": error.details},
    )
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": "Unauthorized"},
    )
