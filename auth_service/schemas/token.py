"""Token schemas (JWT payload, request and response bodies)"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class TokenType(str, Enum):
    """Token types"""

    ACCESS = "access"


class AccessTokenClaims(BaseModel):
    """Fixed claim set of an access token"""

    model_config = ConfigDict(frozen=True)

    iss: str = Field(..., description="Issuer")
    sub: str = Field(..., description="Subject (user id)")
    aud: str = Field(..., description="Audience")
    exp: int = Field(..., description="Expiration time (Unix timestamp)")
    iat: int = Field(..., description="Issued at (Unix timestamp)")
    nbf: int = Field(..., description="Not before (Unix timestamp)")
    jti: str = Field(..., description="JWT ID (unique identifier)")
    name: str = Field(..., description="Display name")
    roles: list[str] = Field(default_factory=list, description="Assigned roles")
    type: TokenType = TokenType.ACCESS


class MintedAccessToken(BaseModel):
    """Signed access token together with the claims it carries"""

    token: str
    claims: AccessTokenClaims
    expires_in: int = Field(..., description="Lifetime in seconds")


class LoginRequest(BaseModel):
    """Login body; ``username`` may also be an email address"""

    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=255)


class RefreshTokenRequest(BaseModel):
    """Body of refresh and revoke calls"""

    refresh_token: str = Field(..., min_length=1, max_length=512)


class TokenResponse(BaseModel):
    """Successful login / refresh payload"""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class MessageResponse(BaseModel):
    """Plain acknowledgement"""

    message: str
