"""Endpoints guarded by access tokens and roles"""

from typing import Annotated

from fastapi import APIRouter, Depends

from auth_service.core.dependencies import CurrentClaims, require_roles
from auth_service.schemas.token import AccessTokenClaims
from auth_service.services.user_service import ADMIN_ROLE, USER_ROLE

router = APIRouter()

AdminClaims = Annotated[AccessTokenClaims, Depends(require_roles(ADMIN_ROLE))]
UserClaims = Annotated[AccessTokenClaims, Depends(require_roles(USER_ROLE))]


@router.get("/secure")
async def secure(claims: CurrentClaims):
    """Any authenticated caller"""
    return {"message": "You are authorized!", "user_id": claims.sub}


@router.get("/admin/dashboard")
async def admin_dashboard(claims: AdminClaims):
    """Admin only"""
    return {"message": "Admin dashboard data", "user_id": claims.sub}


@router.get("/user/profile")
async def user_profile(claims: UserClaims):
    return {
        "user_id": claims.sub,
        "username": claims.name,
        "roles": claims.roles,
    }
